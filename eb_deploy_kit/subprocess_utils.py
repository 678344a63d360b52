from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass
from enum import Enum
from textwrap import shorten
from typing import Mapping, Sequence

from .logging_utils import get_logger


logger = get_logger(__name__)


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"


# update-environment 가 환경이 없을 때 내는 메시지. 다른 NOT_FOUND 와 구분해야 한다.
_ENVIRONMENT_MISSING = re.compile(r"No Environment found", re.IGNORECASE)

# 순서대로 검사한다. aws CLI 는 실패 원인을 자유 텍스트로만 알려주므로
# 분기 전에 여기서 ErrorKind 로 바꿔둔다.
_ERROR_PATTERNS: list[tuple[ErrorKind, re.Pattern[str]]] = [
    (ErrorKind.NOT_FOUND, _ENVIRONMENT_MISSING),
    (ErrorKind.NOT_FOUND, re.compile(r"NoSuchEntity|NoSuchBucket|NoSuchKey")),
    (ErrorKind.NOT_FOUND, re.compile(r"\(404\)|\bNot Found\b")),
    (ErrorKind.CONFLICT, re.compile(r"EntityAlreadyExists|BucketAlreadyOwnedByYou|BucketAlreadyExists")),
    (ErrorKind.CONFLICT, re.compile(r"already exists", re.IGNORECASE)),
    (ErrorKind.TRANSIENT, re.compile(r"Throttl|RequestLimitExceeded|ServiceUnavailable|SlowDown")),
    (ErrorKind.TRANSIENT, re.compile(r"Could not connect|timed out|Connection reset", re.IGNORECASE)),
]


def classify_error(text: str) -> ErrorKind:
    for kind, pattern in _ERROR_PATTERNS:
        if pattern.search(text or ""):
            return kind
    return ErrorKind.UNKNOWN


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str
    stderr: str


class ToolNotFoundError(RuntimeError):
    """실행 파일(aws 등)을 PATH 에서 찾지 못함."""


class CommandError(RuntimeError):
    """
    외부 명령이 0 이 아닌 코드로 끝났거나 시간 초과된 경우.
    kind 는 stderr/stdout 텍스트를 분류한 결과다.
    """

    def __init__(
        self,
        cmd: Sequence[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
        kind: ErrorKind | None = None,
    ) -> None:
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.kind = kind or classify_error(self.output)

        detail = ""
        if stderr.strip():
            detail = "\nstderr:\n" + shorten(stderr.strip(), width=2000)
        elif stdout.strip():
            detail = "\nstdout:\n" + shorten(stdout.strip(), width=2000)
        super().__init__(f"명령 실행 실패: {' '.join(self.cmd)} (exit={returncode}){detail}")

    @property
    def output(self) -> str:
        return f"{self.stderr}\n{self.stdout}"

    @property
    def not_found(self) -> bool:
        return self.kind is ErrorKind.NOT_FOUND

    @property
    def environment_missing(self) -> bool:
        return bool(_ENVIRONMENT_MISSING.search(self.output))


def run_command(
    cmd: Sequence[str],
    *,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = 900.0,
) -> RunResult:
    """
    subprocess 실행 공통 유틸.

    - stdout/stderr 를 캡처하고 DEBUG 로만 남긴다.
    - 실행 파일이 없으면 ToolNotFoundError, 실패/시간 초과는 CommandError.
    """
    logger.debug("명령 실행: %s", " ".join(cmd))
    try:
        result = subprocess.run(  # noqa: S603
            list(cmd),
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd,
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError as e:
        raise ToolNotFoundError(
            f"필요한 명령을 찾을 수 없습니다: {cmd[0]} (aws CLI 가 설치/설정되어 있는지 확인하세요)"
        ) from e
    except subprocess.TimeoutExpired as e:
        raise CommandError(
            cmd,
            returncode=124,
            stderr=f"명령 실행이 {timeout}초 안에 끝나지 않았습니다 (timed out)",
            kind=ErrorKind.TRANSIENT,
        ) from e

    if result.stdout:
        logger.debug("명령 stdout: %s", shorten(result.stdout.strip(), width=2000))
    if result.stderr:
        logger.debug("명령 stderr: %s", shorten(result.stderr.strip(), width=2000))

    if result.returncode != 0:
        raise CommandError(
            cmd,
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )

    return RunResult(returncode=result.returncode, stdout=result.stdout or "", stderr=result.stderr or "")
