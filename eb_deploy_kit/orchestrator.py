from __future__ import annotations

import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .aws_cli import AwsCli
from .bundle import ArtifactNotFoundError, Bundle, package_artifact
from .config import CleanupConfig, DeployConfig
from .logging_utils import get_logger
from . import (
    eb_application,
    eb_environment,
    iam_roles,
    s3_bucket,
)
from .steps import StepPolicy, StepResult, StepStatus, merge_warnings
from .subprocess_utils import CommandError


logger = get_logger(__name__)

DEPLOY_STEPS: List[str] = [
    "bucket",
    "package",
    "upload",
    "application",
    "application_version",
    "iam_roles",
    "environment",
]

CLEANUP_STEPS: List[str] = [
    "environment",
    "application_versions",
    "bucket",
    "application",
]

# 배포는 이후 단계가 의존하는 리소스(버킷/번들/애플리케이션/환경) 실패 시 즉시 중단하고,
# IAM 역할은 경고만 남기고 계속 진행한다.
DEPLOY_POLICIES: Dict[str, StepPolicy] = {
    "bucket": StepPolicy(),
    "package": StepPolicy(),
    "upload": StepPolicy(),
    "application": StepPolicy(),
    "application_version": StepPolicy(),
    "iam_roles": StepPolicy(halt_on_warning=False, halt_on_fatal=False),
    "environment": StepPolicy(),
}

# cleanup 은 최대한 많이 지우는 것이 목적이므로 어떤 단계도 중단시키지 않는다.
CLEANUP_POLICIES: Dict[str, StepPolicy] = {
    name: StepPolicy(halt_on_warning=False, halt_on_fatal=False) for name in CLEANUP_STEPS
}

Step = Tuple[str, Callable[[], StepResult]]


@dataclass
class PipelineReport:
    title: str
    target: str
    succeeded: List[str] = field(default_factory=list)
    warned: List[Tuple[str, str]] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    exit_code: int = 0
    notes: List[str] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)

    def record(self, name: str, result: StepResult) -> None:
        if result.status is StepStatus.SUCCESS:
            self.succeeded.append(name)
        elif result.status is StepStatus.WARNING:
            self.warned.append((name, result.message))
        else:
            self.failed.append((name, result.message))

    def render(self) -> str:
        lines: List[str] = []
        lines.append(f"# {self.title}")
        lines.append(f"- target: {self.target}")
        lines.append("")

        lines.append("## Executed steps")
        if self.succeeded:
            lines.extend(f"- {s}" for s in self.succeeded)
        else:
            lines.append("- (none)")

        lines.append("")
        lines.append("## Warnings")
        if self.warned:
            lines.extend(f"- {s}: {msg}" for s, msg in self.warned)
        else:
            lines.append("- (none)")

        lines.append("")
        lines.append("## Failed steps")
        if self.failed:
            lines.extend(f"- {s}: {msg}" for s, msg in self.failed)
        else:
            lines.append("- (none)")

        if self.skipped:
            lines.append("")
            lines.append("## Skipped steps")
            lines.extend(f"- {s}" for s in self.skipped)

        if self.notes:
            lines.append("")
            lines.extend(self.notes)

        return "\n".join(lines)


def run_steps(report: PipelineReport, steps: Sequence[Step],
              policies: Dict[str, StepPolicy]) -> PipelineReport:
    """
    단계를 순서대로 실행하고, 정책 테이블에 따라 중단 여부를 결정한다.
    단계 안에서 처리되지 않은 CommandError 는 FATAL 로 변환한다.
    """
    halted = False
    for name, func in steps:
        if halted:
            report.skipped.append(name)
            continue

        logger.info("단계 실행: %s", name)
        try:
            result = func()
        except CommandError as e:
            logger.exception("단계 실행 실패: %s", name)
            result = StepResult.fatal(str(e), exit_code=e.returncode)
        except Exception as e:  # noqa: BLE001
            logger.exception("단계 실행 실패: %s", name)
            result = StepResult.fatal(str(e))

        report.record(name, result)
        if result.status is StepStatus.WARNING:
            logger.warning("%s: %s", name, result.message)
        elif result.status is StepStatus.FATAL:
            logger.error("%s: %s", name, result.message)

        policy = policies.get(name, StepPolicy())
        if policy.halts(result):
            halted = True
            report.exit_code = result.exit_code or 1

    return report


def run_deploy(cfg: DeployConfig, aws: AwsCli, *,
               sleep: Callable[[float], None] = time.sleep) -> PipelineReport:
    report = PipelineReport(title="Deploy summary", target=f"{cfg.app_name}/{cfg.env_name}")

    with ExitStack() as stack:
        bundle: Optional[Bundle] = None

        def _package() -> StepResult:
            nonlocal bundle
            # 임시 디렉토리는 파이프라인이 끝날 때(예외 포함) ExitStack 이 정리한다.
            try:
                bundle = stack.enter_context(
                    package_artifact(cfg.jar_path, cfg.app_name, cfg.version_label)
                )
            except ArtifactNotFoundError as e:
                return StepResult.fatal(str(e), exit_code=4)
            return StepResult.success(bundle.zip_name)

        def _upload() -> StepResult:
            if bundle is None:
                return StepResult.fatal("업로드할 번들이 없습니다. package 단계가 먼저 성공해야 합니다.")
            return s3_bucket.upload_bundle(aws, bundle, cfg.bucket)

        steps: List[Step] = [
            ("bucket", lambda: s3_bucket.ensure_bucket(aws, cfg.bucket, cfg.region)),
            ("package", _package),
            ("upload", _upload),
            ("application", lambda: eb_application.ensure_application(aws, cfg.app_name)),
            ("application_version", lambda: eb_application.create_application_version(
                aws, cfg.app_name, cfg.version_label, cfg.bucket, cfg.bundle_key)),
            ("iam_roles", lambda: iam_roles.ensure_iam_roles(
                aws, cfg.instance_profile, cfg.service_role, sleep=sleep)),
            ("environment", lambda: eb_environment.reconcile_environment(aws, cfg)),
        ]
        run_steps(report, steps, DEPLOY_POLICIES)

    if not report.has_failures:
        report.notes.append(
            "배포가 시작되었습니다. 상태 확인: "
            f"aws elasticbeanstalk describe-environments --environment-names {cfg.env_name} "
            f"--region {cfg.region}"
        )
    return report


def run_cleanup(cfg: CleanupConfig, aws: AwsCli, *,
                sleep: Callable[[float], None] = time.sleep,
                clock: Callable[[], float] = time.monotonic) -> PipelineReport:
    report = PipelineReport(title="Cleanup summary", target=cfg.app_name)

    def _bucket() -> StepResult:
        if not cfg.bucket:
            return StepResult.success("버킷 미지정, 건너뜀")
        results = [s3_bucket.remove_prefix(aws, cfg.bucket, cfg.app_prefix)]
        if cfg.delete_bucket:
            results.append(s3_bucket.delete_bucket(aws, cfg.bucket))
        return merge_warnings(
            [r.message for r in results if r.status is not StepStatus.SUCCESS],
            results[-1].message,
        )

    steps: List[Step] = [
        ("environment", lambda: eb_environment.terminate_environment(
            aws, cfg.app_name, cfg.env_name, sleep=sleep, clock=clock)),
        ("application_versions", lambda: eb_application.delete_application_versions(aws, cfg.app_name)),
        ("bucket", _bucket),
    ]
    if cfg.delete_app:
        steps.append(("application", lambda: eb_application.delete_application(aws, cfg.app_name)))
    else:
        report.skipped.append("application")

    run_steps(report, steps, CLEANUP_POLICIES)
    report.notes.append("Cleanup complete.")
    return report


def plan_deploy(cfg: DeployConfig) -> str:
    """
    실제 AWS 호출 없이, 해석된 설정과 실행될 단계를 요약한다.
    """
    lines: List[str] = []
    lines.append("# Deploy plan")
    lines.append(f"- application: {cfg.app_name}")
    lines.append(f"- environment: {cfg.env_name}")
    lines.append(f"- region: {cfg.region}")
    lines.append(f"- profile: {cfg.profile or '(default credentials)'}")
    lines.append("")

    lines.append("## Config summary")
    lines.append(f"- jar: {cfg.jar_path}")
    lines.append(f"- version_label: {cfg.version_label}")
    lines.append(f"- bundle: s3://{cfg.bucket}/{cfg.bundle_key}")
    lines.append(f"- platform (create only): {cfg.platform}")
    lines.append(f"- preferred runtime: {cfg.runtime}")
    lines.append(f"- instance_profile: {cfg.instance_profile}")
    lines.append(f"- service_role: {cfg.service_role}")
    lines.append(f"- port: {cfg.app_port}")
    lines.append("")

    lines.append("## Steps")
    for name in DEPLOY_STEPS:
        policy = DEPLOY_POLICIES[name]
        mode = "halt on failure" if policy.halt_on_fatal else "warn and continue"
        lines.append(f"- {name}: {mode}")

    return "\n".join(lines)


def plan_cleanup(cfg: CleanupConfig) -> str:
    lines: List[str] = []
    lines.append("Planned cleanup:")
    lines.append(f"  Application: {cfg.app_name}")
    lines.append(f"  Environment: {cfg.env_name or '<none>'}")
    lines.append(f"  S3 bucket: {cfg.bucket or '<none>'}")
    lines.append(f"  Region: {cfg.region}")
    lines.append(f"  Delete S3 bucket: {str(cfg.delete_bucket).lower()}")
    lines.append(f"  Delete application: {str(cfg.delete_app).lower()}")
    return "\n".join(lines)
