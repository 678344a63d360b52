"""
aws_cli
-------

aws CLI 호출을 한 곳으로 모으는 얇은 래퍼.
profile/region 인자를 일관되게 붙이고, JSON 출력 파싱을 담당한다.
"""

from __future__ import annotations

import json
import shutil
from typing import Any, Optional

from .subprocess_utils import RunResult, ToolNotFoundError, run_command


class AwsCli:
    def __init__(self, region: str, profile: Optional[str] = None,
                 executable: str = "aws", timeout: float = 900.0) -> None:
        self.region = region
        self.profile = profile
        self.executable = executable
        self.timeout = timeout

    def ensure_available(self) -> None:
        if shutil.which(self.executable) is None:
            raise ToolNotFoundError(
                f"{self.executable} CLI 를 찾을 수 없습니다. 먼저 설치하고 설정(aws configure)하세요."
            )

    def build(self, service: str, operation: str, *args: str,
              region: bool = True) -> list[str]:
        cmd = [self.executable]
        if self.profile:
            cmd += ["--profile", self.profile]
        cmd += [service, operation, *args]
        # iam 같은 글로벌 서비스는 region 을 붙이지 않는다.
        if region:
            cmd += ["--region", self.region]
        return cmd

    def call(self, service: str, operation: str, *args: str,
             region: bool = True) -> RunResult:
        cmd = self.build(service, operation, *args, region=region)
        return run_command(cmd, timeout=self.timeout)

    def call_json(self, service: str, operation: str, *args: str,
                  query: Optional[str] = None, region: bool = True) -> Any:
        extra: list[str] = []
        if query:
            extra += ["--query", query]
        extra += ["--output", "json"]
        result = self.call(service, operation, *args, *extra, region=region)
        text = result.stdout.strip()
        if not text:
            return None
        return json.loads(text)
