"""
s3_bucket
---------

소스 번들을 올릴 S3 버킷 확인/생성, 업로드, 정리를 담당하는 모듈.
"""

from __future__ import annotations

from .aws_cli import AwsCli
from .bundle import Bundle
from .logging_utils import get_logger
from .steps import StepResult, merge_warnings
from .subprocess_utils import CommandError


logger = get_logger(__name__)

# us-east-1 은 LocationConstraint 를 명시하면 오히려 API 가 거부한다.
DEFAULT_S3_REGION = "us-east-1"


def bucket_exists(aws: AwsCli, bucket: str) -> bool:
    try:
        aws.call("s3api", "head-bucket", "--bucket", bucket)
        return True
    except CommandError as e:
        logger.debug("head-bucket 실패 (kind=%s): %s", e.kind.value, e)
        return False


def create_bucket_args(bucket: str, region: str) -> list[str]:
    args = ["--bucket", bucket]
    if region != DEFAULT_S3_REGION:
        args += ["--create-bucket-configuration", f"LocationConstraint={region}"]
    return args


def ensure_bucket(aws: AwsCli, bucket: str, region: str) -> StepResult:
    """
    S3 버킷이 존재하는지 확인하고, 없으면 생성한 뒤 존재가 확인될 때까지 기다린다.
    생성 실패는 배포를 중단시키는 FATAL 결과다.
    """
    if not bucket:
        return StepResult.fatal("ensure_bucket 에 버킷 이름이 전달되지 않았습니다.", exit_code=2)

    if bucket_exists(aws, bucket):
        logger.info("S3 버킷 '%s' 이(가) 이미 존재하며 접근 가능합니다.", bucket)
        return StepResult.success(f"기존 버킷 사용: {bucket}")

    logger.info("S3 버킷 '%s' 이(가) 없거나 접근할 수 없습니다. 리전 '%s' 에 생성합니다.", bucket, region)
    try:
        aws.call("s3api", "create-bucket", *create_bucket_args(bucket, region))
    except CommandError as e:
        return StepResult.fatal(f"버킷 '{bucket}' 생성 실패: {e}")

    logger.info("버킷 '%s' 이(가) 생성될 때까지 대기합니다...", bucket)
    try:
        aws.call("s3api", "wait", "bucket-exists", "--bucket", bucket)
    except CommandError as e:
        return StepResult.fatal(f"버킷 '{bucket}' 생성 대기 실패: {e}")

    logger.info("버킷 '%s' 준비 완료.", bucket)
    return StepResult.success(f"버킷 생성: {bucket}")


def upload_bundle(aws: AwsCli, bundle: Bundle, bucket: str) -> StepResult:
    s3_url = f"s3://{bucket}/{bundle.key}"
    logger.info("%s 업로드 -> %s (region: %s)", bundle.zip_name, s3_url, aws.region)
    try:
        aws.call("s3", "cp", str(bundle.zip_path), s3_url)
    except CommandError as e:
        return StepResult.fatal(f"소스 번들 업로드 실패: {e}")
    return StepResult.success(s3_url)


def remove_prefix(aws: AwsCli, bucket: str, prefix: str) -> StepResult:
    """버킷 안의 prefix 아래 객체를 모두 지운다. 실패는 경고로만 취급한다."""
    s3_url = f"s3://{bucket}/{prefix}"
    logger.info("S3 객체 삭제: %s", s3_url)
    try:
        aws.call("s3", "rm", s3_url, "--recursive")
    except CommandError as e:
        return StepResult.warning(f"{s3_url} 아래 객체 삭제 실패: {e}")
    return StepResult.success(s3_url)


def delete_bucket(aws: AwsCli, bucket: str) -> StepResult:
    logger.info("S3 버킷 삭제: %s", bucket)
    warnings: list[str] = []

    # 남은 객체를 한 번 더 비우고 나서 삭제한다. 비우기 실패는 delete-bucket 결과로 판단.
    try:
        aws.call("s3", "rm", f"s3://{bucket}/", "--recursive")
    except CommandError as e:
        logger.debug("버킷 비우기 실패 (무시): %s", e)

    try:
        aws.call("s3api", "delete-bucket", "--bucket", bucket)
    except CommandError as e:
        if e.not_found:
            logger.info("버킷 '%s' 이(가) 이미 없습니다.", bucket)
        else:
            warnings.append(f"버킷 '{bucket}' 삭제 실패: {e}")

    return merge_warnings(warnings, f"버킷 삭제: {bucket}")
