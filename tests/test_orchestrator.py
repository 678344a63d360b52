from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from conftest import FakeAws, FakeClock, aws_error

from eb_deploy_kit import orchestrator
from eb_deploy_kit.config import CleanupConfig, DeployConfig
from eb_deploy_kit.steps import StepPolicy, StepResult


EB = "elasticbeanstalk"


def _deploy_cfg(tmp_path: Path) -> DeployConfig:
    jar = tmp_path / "app.jar"
    jar.write_bytes(b"jar")
    return DeployConfig(
        app_name="my-app",
        env_name="my-env",
        bucket="my-bucket",
        version_label="v-20240101000000",
        jar_path=str(jar),
    )


def _happy_aws() -> FakeAws:
    aws = FakeAws()
    aws.on(EB, "describe-applications", ["my-app"])
    aws.on(EB, "describe-environments", 1)
    return aws


def test_run_deploy_success_runs_all_steps_in_order(tmp_path: Path) -> None:
    aws = _happy_aws()

    report = orchestrator.run_deploy(_deploy_cfg(tmp_path), aws, sleep=lambda s: None)

    assert report.exit_code == 0
    assert not report.has_failures
    assert report.succeeded == orchestrator.DEPLOY_STEPS
    assert aws.ops() == [
        "s3api head-bucket",
        "s3 cp",
        f"{EB} describe-applications",
        f"{EB} create-application-version",
        "iam get-instance-profile",
        "iam get-role",
        f"{EB} describe-environments",
        f"{EB} update-environment",
    ]
    (cp_args,) = aws.args_of("s3", "cp")
    assert cp_args[1] == "s3://my-bucket/my-app/v-20240101000000/my-app-v-20240101000000.zip"
    assert "describe-environments" in report.render()


def test_bucket_failure_halts_pipeline(tmp_path: Path) -> None:
    aws = FakeAws()
    aws.on("s3api", "head-bucket", aws_error("(403) Forbidden"))
    aws.on("s3api", "create-bucket", aws_error("AccessDenied"))

    report = orchestrator.run_deploy(_deploy_cfg(tmp_path), aws, sleep=lambda s: None)

    assert report.exit_code == 1
    assert [name for name, _ in report.failed] == ["bucket"]
    assert report.skipped == orchestrator.DEPLOY_STEPS[1:]
    assert "s3 cp" not in aws.ops()


def test_application_create_failure_halts_before_environment(tmp_path: Path) -> None:
    aws = FakeAws()
    aws.on(EB, "describe-applications", [])
    aws.on(EB, "create-application", aws_error("AccessDenied"))

    report = orchestrator.run_deploy(_deploy_cfg(tmp_path), aws, sleep=lambda s: None)

    assert report.exit_code == 1
    assert f"{EB} create-application-version" not in aws.ops()
    assert "environment" in report.skipped


def test_iam_warning_does_not_halt_deploy(tmp_path: Path) -> None:
    aws = _happy_aws()
    denied = aws_error("AccessDenied")
    for op in ("get-instance-profile", "get-role", "create-role", "attach-role-policy",
               "create-instance-profile", "add-role-to-instance-profile"):
        aws.on("iam", op, denied)

    report = orchestrator.run_deploy(_deploy_cfg(tmp_path), aws, sleep=lambda s: None)

    assert report.exit_code == 0
    assert [name for name, _ in report.warned] == ["iam_roles"]
    assert f"{EB} update-environment" in aws.ops()


def test_update_error_exit_status_propagates(tmp_path: Path) -> None:
    aws = _happy_aws()
    aws.on(EB, "update-environment", aws_error("AccessDenied", returncode=255))

    report = orchestrator.run_deploy(_deploy_cfg(tmp_path), aws, sleep=lambda s: None)

    assert report.exit_code == 255
    assert [name for name, _ in report.failed] == ["environment"]


def test_missing_jar_is_fatal_with_exit_4(tmp_path: Path) -> None:
    cfg = replace(_deploy_cfg(tmp_path), jar_path=str(tmp_path / "nope.jar"))

    report = orchestrator.run_deploy(cfg, _happy_aws(), sleep=lambda s: None)

    assert report.exit_code == 4


def test_upload_without_bundle_is_fatal_without_s3_call(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    policies = dict(orchestrator.DEPLOY_POLICIES, package=StepPolicy(halt_on_fatal=False))
    monkeypatch.setattr(orchestrator, "DEPLOY_POLICIES", policies)
    cfg = replace(_deploy_cfg(tmp_path), jar_path=str(tmp_path / "nope.jar"))
    aws = _happy_aws()

    report = orchestrator.run_deploy(cfg, aws, sleep=lambda s: None)

    assert [name for name, _ in report.failed][:2] == ["package", "upload"]
    assert "s3 cp" not in aws.ops()
    assert f"{EB} describe-applications" not in aws.ops()


def test_temp_bundle_is_removed_after_deploy(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[Path] = []
    real_upload = orchestrator.s3_bucket.upload_bundle

    def spy(aws, bundle, bucket):  # noqa: ANN001
        seen.append(bundle.zip_path)
        assert bundle.zip_path.exists()
        return real_upload(aws, bundle, bucket)

    monkeypatch.setattr(orchestrator.s3_bucket, "upload_bundle", spy)

    orchestrator.run_deploy(_deploy_cfg(tmp_path), _happy_aws(), sleep=lambda s: None)

    assert seen and not seen[0].parent.exists()


def test_unexpected_exception_in_step_becomes_fatal(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(aws, app_name):  # noqa: ANN001, ARG001
        raise RuntimeError("boom")

    monkeypatch.setattr(orchestrator.eb_application, "ensure_application", boom)

    report = orchestrator.run_deploy(_deploy_cfg(tmp_path), _happy_aws(), sleep=lambda s: None)

    assert report.exit_code == 1
    assert report.failed == [("application", "boom")]


def test_run_steps_respects_policy_table() -> None:
    report = orchestrator.PipelineReport(title="t", target="x")
    steps = [
        ("a", lambda: StepResult.warning("careful")),
        ("b", lambda: StepResult.fatal("nope", exit_code=7)),
        ("c", lambda: StepResult.success()),
    ]
    policies = {
        "a": orchestrator.StepPolicy(halt_on_warning=False),
        "b": orchestrator.StepPolicy(halt_on_fatal=True),
    }

    orchestrator.run_steps(report, steps, policies)

    assert report.warned == [("a", "careful")]
    assert report.failed == [("b", "nope")]
    assert report.skipped == ["c"]
    assert report.exit_code == 7


def _cleanup_cfg(**overrides) -> CleanupConfig:
    values = dict(app_name="my-app", env_name="my-env", bucket="my-bucket")
    values.update(overrides)
    return CleanupConfig(**values)


def test_cleanup_deletes_each_version_and_continues_past_failures(fake_clock: FakeClock) -> None:
    aws = FakeAws()
    aws.on(EB, "describe-environments", 0)
    aws.on(EB, "list-application-versions", ["v1", "v2", "v3"])
    aws.on(EB, "delete-application-version", None, aws_error("AccessDenied"), None)

    report = orchestrator.run_cleanup(_cleanup_cfg(), aws, sleep=fake_clock.sleep, clock=fake_clock)

    deleted = [args[args.index("--version-label") + 1]
               for args in aws.args_of(EB, "delete-application-version")]
    assert deleted == ["v1", "v2", "v3"]
    assert all("--delete-source-bundle" in a for a in aws.args_of(EB, "delete-application-version"))
    assert [name for name, _ in report.warned] == ["application_versions"]
    assert report.exit_code == 0
    # 버전 삭제 경고 뒤에도 버킷 정리는 진행된다.
    (rm_args,) = aws.args_of("s3", "rm")
    assert rm_args[0] == "s3://my-bucket/my-app/"


def test_cleanup_termination_timeout_does_not_abort_sequence(fake_clock: FakeClock) -> None:
    aws = FakeAws()
    aws.on(EB, "describe-environments", 1)

    report = orchestrator.run_cleanup(
        _cleanup_cfg(delete_app=True), aws, sleep=fake_clock.sleep, clock=fake_clock
    )

    assert fake_clock.now >= 600
    assert [name for name, _ in report.warned] == ["environment"]
    assert f"{EB} list-application-versions" in aws.ops()
    assert f"{EB} delete-application" in aws.ops()


def test_cleanup_delete_bucket_empties_and_deletes(fake_clock: FakeClock) -> None:
    aws = FakeAws()

    orchestrator.run_cleanup(
        _cleanup_cfg(env_name=None, delete_bucket=True), aws, sleep=fake_clock.sleep, clock=fake_clock
    )

    rm_targets = [args[0] for args in aws.args_of("s3", "rm")]
    assert rm_targets == ["s3://my-bucket/my-app/", "s3://my-bucket/"]
    assert aws.args_of("s3api", "delete-bucket") == [("--bucket", "my-bucket")]
    assert f"{EB} delete-application" not in aws.ops()


def test_plan_deploy_makes_no_remote_calls(tmp_path: Path) -> None:
    text = orchestrator.plan_deploy(_deploy_cfg(tmp_path))

    assert "# Deploy plan" in text
    assert "s3://my-bucket/my-app/v-20240101000000/my-app-v-20240101000000.zip" in text
    assert "- iam_roles: warn and continue" in text
