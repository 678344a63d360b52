"""
eb_application
--------------

Elastic Beanstalk 애플리케이션과 애플리케이션 버전 등록/삭제를 담당하는 모듈.
"""

from __future__ import annotations

from .aws_cli import AwsCli
from .logging_utils import get_logger
from .steps import StepResult, merge_warnings
from .subprocess_utils import CommandError


logger = get_logger(__name__)


def application_exists(aws: AwsCli, app_name: str) -> bool:
    try:
        names = aws.call_json(
            "elasticbeanstalk",
            "describe-applications",
            "--application-names",
            app_name,
            query="Applications[].ApplicationName",
        )
    except CommandError as e:
        logger.debug("describe-applications 실패: %s", e)
        return False
    # 이름이 정확히 일치하는 경우만 존재로 본다.
    return app_name in (names or [])


def ensure_application(aws: AwsCli, app_name: str) -> StepResult:
    """
    애플리케이션이 없으면 생성한다.
    이후 단계(버전 등록, 환경 생성)가 모두 의존하므로 생성 실패는 FATAL.
    """
    if application_exists(aws, app_name):
        logger.info("애플리케이션 '%s' 이(가) 이미 존재합니다.", app_name)
        return StepResult.success(f"기존 애플리케이션 사용: {app_name}")

    logger.info("애플리케이션 '%s' 을(를) 생성합니다...", app_name)
    try:
        aws.call("elasticbeanstalk", "create-application", "--application-name", app_name)
    except CommandError as e:
        return StepResult.fatal(
            f"애플리케이션 '{app_name}' 생성 실패, 애플리케이션 없이는 진행할 수 없습니다: {e}"
        )
    logger.info("애플리케이션 '%s' 생성 완료.", app_name)
    return StepResult.success(f"애플리케이션 생성: {app_name}")


def create_application_version(aws: AwsCli, app_name: str, version_label: str,
                               bucket: str, key: str) -> StepResult:
    """버전 라벨은 배포마다 고유하다고 가정하므로 존재 여부를 확인하지 않는다."""
    logger.info("애플리케이션 버전 생성: %s", version_label)
    try:
        aws.call(
            "elasticbeanstalk",
            "create-application-version",
            "--application-name",
            app_name,
            "--version-label",
            version_label,
            "--source-bundle",
            f"S3Bucket={bucket},S3Key={key}",
            "--auto-create-application",
        )
    except CommandError as e:
        return StepResult.fatal(f"애플리케이션 버전 '{version_label}' 생성 실패: {e}")
    return StepResult.success(version_label)


def list_application_versions(aws: AwsCli, app_name: str) -> list[str]:
    labels = aws.call_json(
        "elasticbeanstalk",
        "list-application-versions",
        "--application-name",
        app_name,
        query="ApplicationVersions[].VersionLabel",
    )
    return [str(label) for label in labels or []]


def delete_application_versions(aws: AwsCli, app_name: str) -> StepResult:
    """
    애플리케이션의 모든 버전을 소스 번들과 함께 삭제한다.
    개별 버전 삭제 실패는 경고로 남기고 다음 버전으로 넘어간다.
    """
    logger.info("%s 의 애플리케이션 버전을 삭제합니다 (소스 번들 포함)...", app_name)
    try:
        labels = list_application_versions(aws, app_name)
    except CommandError as e:
        return StepResult.warning(f"애플리케이션 버전 목록 조회 실패: {e}")

    if not labels:
        logger.info("삭제할 애플리케이션 버전이 없습니다.")
        return StepResult.success("버전 없음")

    deleted: list[str] = []
    warnings: list[str] = []
    for label in labels:
        logger.info("애플리케이션 버전 삭제: %s", label)
        try:
            aws.call(
                "elasticbeanstalk",
                "delete-application-version",
                "--application-name",
                app_name,
                "--version-label",
                label,
                "--delete-source-bundle",
            )
            deleted.append(label)
        except CommandError as e:
            logger.warning("버전 %s 또는 소스 번들을 삭제하지 못했습니다: %s", label, e)
            warnings.append(f"버전 {label} 삭제 실패")

    return merge_warnings(warnings, f"{len(deleted)}개 버전 삭제", value=deleted)


def delete_application(aws: AwsCli, app_name: str) -> StepResult:
    logger.info("Elastic Beanstalk 애플리케이션 삭제: %s", app_name)
    try:
        aws.call(
            "elasticbeanstalk",
            "delete-application",
            "--application-name",
            app_name,
            "--terminate-env-by-force",
        )
    except CommandError as e:
        return StepResult.warning(f"애플리케이션 '{app_name}' 삭제 실패: {e}")
    return StepResult.success(f"애플리케이션 삭제: {app_name}")
