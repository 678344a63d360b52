"""
steps
-----

각 reconcile 단계의 결과 타입과, 파이프라인이 결과를 어떻게 다룰지 정하는 정책.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class StepStatus(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    FATAL = "fatal"


@dataclass(frozen=True)
class StepResult:
    status: StepStatus
    message: str = ""
    exit_code: int = 0
    value: Any = None

    @classmethod
    def success(cls, message: str = "", value: Any = None) -> "StepResult":
        return cls(StepStatus.SUCCESS, message, 0, value)

    @classmethod
    def warning(cls, message: str, value: Any = None) -> "StepResult":
        return cls(StepStatus.WARNING, message, 0, value)

    @classmethod
    def fatal(cls, message: str, exit_code: int = 1) -> "StepResult":
        return cls(StepStatus.FATAL, message, exit_code or 1)

    @property
    def ok(self) -> bool:
        return self.status is not StepStatus.FATAL


@dataclass(frozen=True)
class StepPolicy:
    # WARNING 이 나오면 이후 단계를 중단할지
    halt_on_warning: bool = False
    # FATAL 이 나오면 이후 단계를 중단할지 (cleanup 은 끝까지 진행)
    halt_on_fatal: bool = True

    def halts(self, result: StepResult) -> bool:
        if result.status is StepStatus.FATAL:
            return self.halt_on_fatal
        if result.status is StepStatus.WARNING:
            return self.halt_on_warning
        return False


def merge_warnings(messages: list[str], success_message: str = "",
                   value: Optional[Any] = None) -> StepResult:
    """하위 호출에서 모은 경고가 있으면 WARNING, 없으면 SUCCESS."""
    if messages:
        return StepResult.warning("; ".join(messages), value=value)
    return StepResult.success(success_message, value=value)
