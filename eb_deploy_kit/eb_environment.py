"""
eb_environment
--------------

Elastic Beanstalk 환경 생성/업데이트/종료를 담당하는 모듈.

환경 상태는 ABSENT / PRESENT 두 가지로만 본다.
생성/업데이트는 '시작' 까지만 확인하고 헬스 체크를 기다리지 않는다.
"""

from __future__ import annotations

import json
import time
from enum import Enum
from typing import Callable, Optional

from .aws_cli import AwsCli
from .config import DeployConfig
from .eb_platform import resolve_platform
from .logging_utils import get_logger
from .steps import StepResult
from .subprocess_utils import CommandError, ErrorKind


logger = get_logger(__name__)

TERMINATE_POLL_SECONDS = 6.0
TERMINATE_TIMEOUT_SECONDS = 600.0


class EnvironmentState(str, Enum):
    ABSENT = "absent"
    PRESENT = "present"


def _describe_count(aws: AwsCli, app_name: str, env_name: str) -> int:
    count = aws.call_json(
        "elasticbeanstalk",
        "describe-environments",
        "--application-name",
        app_name,
        "--environment-names",
        env_name,
        "--no-include-deleted",
        query="length(Environments)",
    )
    return int(count or 0)


def environment_count(aws: AwsCli, app_name: str, env_name: str) -> int:
    """조회 실패는 0(없음)으로 취급한다."""
    try:
        return _describe_count(aws, app_name, env_name)
    except (CommandError, ValueError) as e:
        logger.debug("describe-environments 실패, 환경 없음으로 간주: %s", e)
        return 0


def environment_state(aws: AwsCli, app_name: str, env_name: str) -> EnvironmentState:
    if environment_count(aws, app_name, env_name) > 0:
        return EnvironmentState.PRESENT
    return EnvironmentState.ABSENT


def option_settings(cfg: DeployConfig) -> str:
    settings = [
        {
            "Namespace": "aws:autoscaling:launchconfiguration",
            "OptionName": "IamInstanceProfile",
            "Value": cfg.instance_profile,
        },
        {
            "Namespace": "aws:elasticbeanstalk:environment",
            "OptionName": "ServiceRole",
            "Value": cfg.service_role,
        },
        {
            "Namespace": "aws:elasticbeanstalk:application:environment",
            "OptionName": "PORT",
            "Value": cfg.app_port,
        },
    ]
    return json.dumps(settings)


def update_environment(aws: AwsCli, cfg: DeployConfig) -> None:
    aws.call(
        "elasticbeanstalk",
        "update-environment",
        "--environment-name",
        cfg.env_name,
        "--version-label",
        cfg.version_label,
        "--option-settings",
        option_settings(cfg),
    )


def create_environment(aws: AwsCli, cfg: DeployConfig) -> StepResult:
    platform = resolve_platform(aws, cfg.platform, cfg.runtime)
    logger.info("환경 '%s' 생성 (platform: %s)", cfg.env_name, platform)
    try:
        aws.call(
            "elasticbeanstalk",
            "create-environment",
            "--application-name",
            cfg.app_name,
            "--environment-name",
            cfg.env_name,
            "--solution-stack-name",
            platform,
            "--version-label",
            cfg.version_label,
            "--option-settings",
            option_settings(cfg),
        )
    except CommandError as e:
        return StepResult.fatal(f"환경 '{cfg.env_name}' 생성 실패: {e}", exit_code=1)

    logger.info("환경 생성이 시작되었습니다. 사용 가능해지기까지 몇 분 걸릴 수 있습니다.")
    return StepResult.success(f"환경 생성 시작: {cfg.env_name}", value=platform)


def reconcile_environment(aws: AwsCli, cfg: DeployConfig) -> StepResult:
    """
    PRESENT 면 새 버전으로 업데이트, ABSENT 면 플랫폼을 고른 뒤 생성한다.
    업데이트 도중 환경이 사라진 경우("No Environment found")만 생성으로 한 번만 전환한다.
    """
    state = environment_state(aws, cfg.app_name, cfg.env_name)

    if state is EnvironmentState.ABSENT:
        logger.info("환경 '%s' 이(가) 없어 새로 생성합니다.", cfg.env_name)
        return create_environment(aws, cfg)

    logger.info("환경 %s 을(를) 버전 %s 로 업데이트합니다.", cfg.env_name, cfg.version_label)
    try:
        update_environment(aws, cfg)
    except CommandError as e:
        logger.warning("업데이트 실패: %s", e)
        if e.environment_missing:
            logger.info("업데이트 중 환경이 없는 것으로 확인되어 create-environment 로 전환합니다.")
            return create_environment(aws, cfg)
        return StepResult.fatal(
            f"예상하지 못한 이유로 업데이트에 실패하여 중단합니다: {e}",
            exit_code=e.returncode,
        )

    logger.info("업데이트가 시작되었습니다.")
    return StepResult.success(f"환경 업데이트 시작: {cfg.env_name}")


def wait_for_termination(aws: AwsCli, app_name: str, env_name: str, *,
                         sleep: Callable[[float], None] = time.sleep,
                         clock: Callable[[], float] = time.monotonic,
                         interval: float = TERMINATE_POLL_SECONDS,
                         timeout: float = TERMINATE_TIMEOUT_SECONDS) -> bool:
    """
    환경이 사라질 때까지 interval 마다 확인한다. timeout 을 넘기면 False.
    일시적인 조회 실패(TRANSIENT)는 '아직 있음' 으로 보고 계속 기다린다.
    """
    logger.info("환경 종료를 기다립니다 (timeout %.0fs)...", timeout)
    start = clock()
    while True:
        sleep(interval)
        try:
            remaining = _describe_count(aws, app_name, env_name)
        except CommandError as e:
            remaining = 1 if e.kind is ErrorKind.TRANSIENT else 0
        except ValueError:
            remaining = 0

        if remaining == 0:
            logger.info("환경이 종료되었습니다.")
            return True
        if clock() - start > timeout:
            return False


def terminate_environment(aws: AwsCli, app_name: str, env_name: Optional[str], *,
                          sleep: Callable[[float], None] = time.sleep,
                          clock: Callable[[], float] = time.monotonic) -> StepResult:
    if not env_name:
        return StepResult.success("환경 이름 없음, 건너뜀")

    if environment_count(aws, app_name, env_name) == 0:
        logger.info("환경 '%s' 이(가) 없어 종료를 건너뜁니다.", env_name)
        return StepResult.success(f"환경 없음: {env_name}")

    logger.info("환경 종료: %s", env_name)
    try:
        aws.call("elasticbeanstalk", "terminate-environment", "--environment-name", env_name)
    except CommandError as e:
        if e.kind is ErrorKind.NOT_FOUND:
            logger.info("환경 '%s' 이(가) 없거나 이미 종료되었습니다. 대기를 건너뜁니다.", env_name)
            return StepResult.success(f"이미 종료됨: {env_name}")
        return StepResult.warning(
            f"terminate-environment 실패, 환경을 직접 확인해야 할 수 있습니다: {e}"
        )

    if not wait_for_termination(aws, app_name, env_name, sleep=sleep, clock=clock):
        return StepResult.warning(f"환경 '{env_name}' 종료 대기 시간 초과")
    return StepResult.success(f"환경 종료: {env_name}")
