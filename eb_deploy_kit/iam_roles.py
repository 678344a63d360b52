"""
iam_roles
---------

EC2 인스턴스 프로파일(역할)과 Elastic Beanstalk 서비스 역할을 준비하는 모듈.

IAM 권한이 부족해도 배포는 계속 진행한다. 이미 다른 이름으로 만들어 둔 역할을
EB_INSTANCE_PROFILE / EB_SERVICE_ROLE 로 지정했을 수 있기 때문이다.
"""

from __future__ import annotations

import json
import time
from typing import Callable

from .aws_cli import AwsCli
from .logging_utils import get_logger
from .steps import StepResult, merge_warnings
from .subprocess_utils import CommandError, ErrorKind


logger = get_logger(__name__)

Sleep = Callable[[float], None]

EC2_PRINCIPAL = "ec2.amazonaws.com"
EB_PRINCIPAL = "elasticbeanstalk.amazonaws.com"

WEB_TIER_POLICY_ARN = "arn:aws:iam::aws:policy/AWSElasticBeanstalkWebTier"
SERVICE_POLICY_ARN = "arn:aws:iam::aws:policy/service-role/AWSElasticBeanstalkService"

INSTANCE_PROFILE_SETTLE_SECONDS = 10.0
SERVICE_ROLE_SETTLE_SECONDS = 5.0

PROPAGATION_ATTEMPTS = 5
PROPAGATION_BASE_DELAY = 1.0


def trust_policy(principal: str) -> str:
    return json.dumps(
        {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Effect": "Allow",
                    "Principal": {"Service": principal},
                    "Action": "sts:AssumeRole",
                }
            ],
        },
        separators=(",", ":"),
    )


def _iam(aws: AwsCli, operation: str, *args: str) -> None:
    aws.call("iam", operation, *args, region=False)


def _try_iam(aws: AwsCli, warnings: list[str], operation: str, *args: str) -> bool:
    """
    IAM 호출을 시도하고 실패하면 warnings 에 기록한다.
    '이미 존재함(CONFLICT)' 은 목적이 달성된 것이므로 경고로 치지 않는다.
    """
    try:
        _iam(aws, operation, *args)
        return True
    except CommandError as e:
        if e.kind is ErrorKind.CONFLICT:
            logger.debug("iam %s: 이미 존재함 (%s)", operation, e)
            return True
        logger.warning("iam %s 실패: %s", operation, e)
        warnings.append(f"iam {operation} 실패")
        return False


def instance_profile_ready(aws: AwsCli, name: str) -> bool:
    try:
        roles = aws.call_json(
            "iam",
            "get-instance-profile",
            "--instance-profile-name",
            name,
            query="InstanceProfile.Roles[].RoleName",
            region=False,
        )
    except CommandError:
        return False
    return name in (roles or [])


def role_exists(aws: AwsCli, name: str) -> bool:
    try:
        _iam(aws, "get-role", "--role-name", name)
        return True
    except CommandError:
        return False


def instance_profile_exists(aws: AwsCli, name: str) -> bool:
    try:
        _iam(aws, "get-instance-profile", "--instance-profile-name", name)
        return True
    except CommandError:
        return False


def wait_for_propagation(probe: Callable[[], bool], settle_seconds: float,
                         *, sleep: Sleep = time.sleep,
                         attempts: int = PROPAGATION_ATTEMPTS,
                         base_delay: float = PROPAGATION_BASE_DELAY) -> bool:
    """
    IAM 은 eventual consistency 라서 생성 직후에는 다른 서비스가 리소스를 못 볼 수 있다.
    먼저 IAM 에서 조회될 때까지 지수 백오프로 제한된 횟수만큼 확인한 뒤,
    다른 리전/서비스로 전파될 시간을 위해 고정 지연(settle_seconds)을 둔다.
    """
    delay = base_delay
    visible = False
    for _ in range(max(attempts, 1)):
        if probe():
            visible = True
            break
        sleep(delay)
        delay *= 2

    if not visible:
        logger.warning("IAM 리소스가 아직 조회되지 않습니다. 전파 대기 후 계속 진행합니다.")
    logger.info("IAM 전파 대기 (%.0f초)...", settle_seconds)
    sleep(settle_seconds)
    return visible


def _settle(probe: Callable[[], bool], settle_seconds: float, *, poll: bool,
            sleep: Sleep) -> None:
    # 생성 호출이 실패했다면 리소스가 나타날 리 없으므로 조회 폴링 없이 고정 지연만 둔다.
    if poll:
        wait_for_propagation(probe, settle_seconds, sleep=sleep)
        return
    logger.info("IAM 생성이 완료되지 않아 조회 없이 전파 대기 (%.0f초)...", settle_seconds)
    sleep(settle_seconds)


def ensure_instance_profile(aws: AwsCli, name: str, *, sleep: Sleep = time.sleep) -> list[str]:
    if instance_profile_exists(aws, name):
        logger.info("인스턴스 프로파일 '%s' 이(가) 이미 존재합니다.", name)
        return []

    logger.info("IAM 역할 및 인스턴스 프로파일 '%s' 을(를) 생성합니다...", name)
    warnings: list[str] = []
    _try_iam(aws, warnings, "create-role", "--role-name", name,
             "--assume-role-policy-document", trust_policy(EC2_PRINCIPAL))
    _try_iam(aws, warnings, "attach-role-policy", "--role-name", name,
             "--policy-arn", WEB_TIER_POLICY_ARN)
    created = _try_iam(aws, warnings, "create-instance-profile", "--instance-profile-name", name)
    attached = _try_iam(aws, warnings, "add-role-to-instance-profile",
                        "--instance-profile-name", name, "--role-name", name)

    _settle(lambda: instance_profile_ready(aws, name), INSTANCE_PROFILE_SETTLE_SECONDS,
            poll=created and attached, sleep=sleep)
    return [f"인스턴스 프로파일 '{name}': {w}" for w in warnings]


def ensure_service_role(aws: AwsCli, name: str, *, sleep: Sleep = time.sleep) -> list[str]:
    if role_exists(aws, name):
        logger.info("서비스 역할 '%s' 이(가) 이미 존재합니다.", name)
        return []

    logger.info("서비스 역할 '%s' 을(를) 생성합니다...", name)
    warnings: list[str] = []
    created = _try_iam(aws, warnings, "create-role", "--role-name", name,
                       "--assume-role-policy-document", trust_policy(EB_PRINCIPAL))
    _try_iam(aws, warnings, "attach-role-policy", "--role-name", name,
             "--policy-arn", SERVICE_POLICY_ARN)

    _settle(lambda: role_exists(aws, name), SERVICE_ROLE_SETTLE_SECONDS,
            poll=created, sleep=sleep)
    return [f"서비스 역할 '{name}': {w}" for w in warnings]


def ensure_iam_roles(aws: AwsCli, instance_profile: str, service_role: str,
                     *, sleep: Sleep = time.sleep) -> StepResult:
    """
    인스턴스 프로파일과 서비스 역할을 각각 독립적으로 확인/생성한다.
    실패는 모두 WARNING 으로 낮춰서 반환한다.
    """
    logger.info(
        "IAM 인스턴스 프로파일 '%s' 과 서비스 역할 '%s' 을 확인합니다 (IAM 권한이 필요할 수 있음)...",
        instance_profile,
        service_role,
    )
    warnings = ensure_instance_profile(aws, instance_profile, sleep=sleep)
    warnings += ensure_service_role(aws, service_role, sleep=sleep)

    if warnings:
        warnings.append("인스턴스 프로파일과 서비스 역할을 수동으로 만들어야 할 수 있습니다")
    return merge_warnings(warnings, "IAM 역할 준비 완료")
