"""
pytest 설정:

로컬 작업 환경에 설치된 다른 버전의 eb_deploy_kit 패키지가 존재할 때,
`pytest` 실행 시 site-packages 쪽이 먼저 import 되어 테스트가 깨질 수 있다.
테스트는 항상 현재 레포의 소스를 대상으로 해야 하므로, repo root 를 sys.path 최상단에 고정한다.

FakeAws 는 aws CLI 대신 (service, operation) 별로 미리 정해둔 응답을 돌려주고
모든 호출을 기록한다.
"""

from __future__ import annotations

import os
import sys
from typing import Any, Dict, List, Tuple

import pytest


def pytest_configure() -> None:
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


def aws_error(text: str, returncode: int = 254):
    from eb_deploy_kit.subprocess_utils import CommandError

    return CommandError(["aws"], returncode=returncode, stderr=text)


class FakeAws:
    def __init__(self, region: str = "us-west-2", profile: str | None = None) -> None:
        self.region = region
        self.profile = profile
        self.calls: List[Tuple[str, str, Tuple[str, ...]]] = []
        self._responses: Dict[Tuple[str, str], List[Any]] = {}

    def on(self, service: str, operation: str, *outcomes: Any) -> "FakeAws":
        """응답을 순서대로 소비한다. 마지막 응답은 계속 반복된다."""
        self._responses.setdefault((service, operation), []).extend(outcomes)
        return self

    def _next(self, service: str, operation: str) -> Any:
        queue = self._responses.get((service, operation))
        if not queue:
            return None
        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def ensure_available(self) -> None:
        return None

    def call(self, service: str, operation: str, *args: str, region: bool = True):
        from eb_deploy_kit.subprocess_utils import RunResult

        self.calls.append((service, operation, args))
        out = self._next(service, operation)
        return RunResult(returncode=0, stdout=out if isinstance(out, str) else "", stderr="")

    def call_json(self, service: str, operation: str, *args: str,
                  query: str | None = None, region: bool = True) -> Any:
        self.calls.append((service, operation, args))
        return self._next(service, operation)

    def ops(self) -> List[str]:
        return [f"{s} {o}" for s, o, _ in self.calls]

    def args_of(self, service: str, operation: str) -> List[Tuple[str, ...]]:
        return [a for s, o, a in self.calls if (s, o) == (service, operation)]


@pytest.fixture
def fake_aws() -> FakeAws:
    return FakeAws()


class FakeClock:
    """sleep 호출만큼 시간이 흐르는 가짜 시계."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
