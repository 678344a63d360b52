import signal
import sys
import threading

import click

from .aws_cli import AwsCli
from .bundle import ArtifactNotFoundError, check_artifact
from .config import CleanupConfig, ConfigError, DeployConfig, load_env
from .logging_utils import setup_logging, get_logger
from .orchestrator import plan_cleanup, plan_deploy, run_cleanup, run_deploy
from .subprocess_utils import ToolNotFoundError


logger = get_logger(__name__)

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

EXIT_USAGE = 2
EXIT_TOOL_MISSING = 3
EXIT_ARTIFACT_MISSING = 4


def _install_sigterm_handler() -> None:
    # SIGTERM 도 SystemExit 로 바꿔서 임시 디렉토리 등 with 블록이 정리되도록 한다.
    if threading.current_thread() is not threading.main_thread():
        return

    def _handler(signum, frame) -> None:  # noqa: ANN001, ARG001
        raise SystemExit(128 + signum)

    signal.signal(signal.SIGTERM, _handler)


def _make_aws(region: str, profile) -> AwsCli:  # noqa: ANN001
    return AwsCli(region=region, profile=profile)


def _require_aws(aws: AwsCli) -> None:
    try:
        aws.ensure_available()
    except ToolNotFoundError as e:
        click.echo(f"[ERROR] {e}", err=True)
        sys.exit(EXIT_TOOL_MISSING)


def _common_options(func):  # noqa: ANN001
    func = click.option(
        "-v",
        "--verbose",
        count=True,
        help="로그 레벨을 DEBUG로 올립니다.",
    )(func)
    func = click.option(
        "-C",
        "--chdir",
        "chdir",
        type=click.Path(file_okay=False, dir_okay=True, exists=True),
        default=".",
        help=".env / .env.eb 를 읽을 작업 디렉토리 (기본: 현재 디렉토리)",
    )(func)
    return func


@click.command(context_settings=CONTEXT_SETTINGS)
@click.option("--app", help="Elastic Beanstalk 애플리케이션 이름 (필수, EB_APP_NAME)")
@click.option("--env", "env_name", help="Elastic Beanstalk 환경 이름 (필수, EB_ENV_NAME)")
@click.option("--bucket", help="소스 번들을 올릴 S3 버킷 (필수, EB_S3_BUCKET)")
@click.option("--region", help="AWS 리전 (AWS_REGION, 기본: us-west-2)")
@click.option("--platform", help="새 환경 생성 시 사용할 솔루션 스택 이름 (EB_PLATFORM)")
@click.option("--profile", help="사용할 AWS CLI 프로파일 (AWS_PROFILE)")
@click.option("--jar", help="배포할 jar 경로 (EB_JAR_PATH)")
@click.option("--version", "version_label", help="배포 버전 라벨 (기본: v-YYYYMMDDHHMMSS)")
@click.option("--plan", "show_plan", is_flag=True, help="AWS 호출 없이 해석된 설정과 단계만 출력합니다.")
@_common_options
@click.pass_context
def deploy_main(ctx: click.Context, app, env_name, bucket, region, platform, profile,  # noqa: ANN001
                jar, version_label, show_plan: bool, chdir: str, verbose: int) -> None:
    """빌드된 Spring Boot jar 를 AWS Elastic Beanstalk 에 배포한다.

    \b
    예:
      deploy-eb --app my-app --env my-env --bucket my-eb-bucket
      AWS_PROFILE=work deploy-eb --app my-app --env my-env --bucket my-eb-bucket --jar build/libs/app.jar
    """
    setup_logging(verbose)

    flags = {
        "app": app,
        "env": env_name,
        "bucket": bucket,
        "region": region,
        "platform": platform,
        "profile": profile,
        "jar": jar,
        "version": version_label,
    }
    try:
        cfg = DeployConfig.resolve(flags, load_env(chdir), base_dir=chdir)
    except ConfigError as e:
        raise click.UsageError(str(e), ctx) from e
    logger.debug("Config resolved: %s", cfg)

    if show_plan:
        click.echo(plan_deploy(cfg))
        return

    aws = _make_aws(cfg.region, cfg.profile)
    _require_aws(aws)

    try:
        check_artifact(cfg.jar_path)
    except ArtifactNotFoundError as e:
        click.echo(f"[ERROR] {e}", err=True)
        sys.exit(EXIT_ARTIFACT_MISSING)

    _install_sigterm_handler()
    report = run_deploy(cfg, aws)
    click.echo(report.render())

    if report.exit_code:
        sys.exit(report.exit_code)


@click.command(context_settings=CONTEXT_SETTINGS)
@click.option("--app", help="Elastic Beanstalk 애플리케이션 이름 (필수, EB_APP_NAME)")
@click.option("--env", "env_name", help="종료할 환경 이름 (선택, EB_ENV_NAME)")
@click.option("--bucket", help="소스 번들을 올린 S3 버킷 (선택, EB_S3_BUCKET)")
@click.option("--region", help="AWS 리전 (AWS_REGION, 기본: us-west-2)")
@click.option("--profile", help="사용할 AWS CLI 프로파일 (AWS_PROFILE)")
@click.option("--delete-bucket", is_flag=True, help="객체 삭제 후 S3 버킷 자체도 삭제합니다 (위험)")
@click.option("--delete-app", is_flag=True, help="Elastic Beanstalk 애플리케이션을 삭제합니다 (위험)")
@click.option("--yes", "assume_yes", is_flag=True, help="확인 프롬프트를 건너뜁니다.")
@_common_options
@click.pass_context
def cleanup_main(ctx: click.Context, app, env_name, bucket, region, profile,  # noqa: ANN001
                 delete_bucket: bool, delete_app: bool, assume_yes: bool,
                 chdir: str, verbose: int) -> None:
    """deploy-eb 로 만든 리소스를 정리한다.

    \b
    예:
      cleanup-eb --app my-app --env my-env --bucket my-eb-bucket --region us-west-2 --profile work
    """
    setup_logging(verbose)

    flags = {
        "app": app,
        "env": env_name,
        "bucket": bucket,
        "region": region,
        "profile": profile,
        "delete_bucket": delete_bucket,
        "delete_app": delete_app,
    }
    try:
        cfg = CleanupConfig.resolve(flags, load_env(chdir))
    except ConfigError as e:
        raise click.UsageError(str(e), ctx) from e

    aws = _make_aws(cfg.region, cfg.profile)
    _require_aws(aws)

    click.echo(plan_cleanup(cfg))
    click.echo("")
    if not assume_yes and not click.confirm("Proceed with cleanup?", default=False):
        click.echo("Aborting.")
        sys.exit(1)

    report = run_cleanup(cfg, aws)
    click.echo(report.render())
