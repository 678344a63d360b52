from __future__ import annotations

from conftest import FakeAws, aws_error

from eb_deploy_kit.eb_platform import resolve_platform, select_solution_stack


STACKS = [
    "64bit Amazon Linux 2023 v4.2.0 running Python 3.11",
    "64bit Amazon Linux 2 v3.6.0 running Corretto 11",
    "64bit Amazon Linux 2023 v4.1.0 running Corretto 17",
    "64bit Windows Server 2019 v2.14.0 running IIS 10.0",
]


def test_prefers_exact_runtime_version() -> None:
    assert select_solution_stack(STACKS, "Corretto 17") == STACKS[2]


def test_falls_back_to_family_on_known_base_image() -> None:
    stacks = ["64bit Debian running corretto 8", "64bit Amazon Linux 2 v3.6.0 running Corretto 11"]

    assert select_solution_stack(stacks, "Corretto 17") == stacks[1]


def test_falls_back_to_any_family_match() -> None:
    stacks = ["64bit Debian running Corretto 8", "64bit Windows running IIS"]

    assert select_solution_stack(stacks, "Corretto 17") == stacks[0]


def test_no_match_returns_none() -> None:
    assert select_solution_stack(["64bit Windows running IIS"], "Corretto 17") is None
    assert select_solution_stack([], "Corretto 17") is None


def test_resolve_platform_uses_configured_default_on_failure(fake_aws: FakeAws) -> None:
    fake_aws.on("elasticbeanstalk", "list-available-solution-stacks", aws_error("AccessDenied"))

    assert resolve_platform(fake_aws, "configured stack") == "configured stack"


def test_resolve_platform_picks_from_listing(fake_aws: FakeAws) -> None:
    fake_aws.on("elasticbeanstalk", "list-available-solution-stacks", STACKS)

    assert resolve_platform(fake_aws, "configured stack") == STACKS[2]
