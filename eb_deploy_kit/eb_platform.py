"""
eb_platform
-----------

리전에서 사용 가능한 솔루션 스택(플랫폼) 중 원하는 런타임에 맞는 것을 고른다.
새 환경을 만들 때만 사용하고, 기존 환경 업데이트 시에는 플랫폼을 바꾸지 않는다.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from .aws_cli import AwsCli
from .logging_utils import get_logger
from .subprocess_utils import CommandError


logger = get_logger(__name__)

BASE_IMAGES: Sequence[str] = ("Amazon Linux 2", "Amazon Linux 2023")


def runtime_family(runtime: str) -> str:
    # "Corretto 17" -> "Corretto"
    return runtime.split()[0] if runtime.strip() else runtime


def _first(stacks: Iterable[str], *needles: str) -> Optional[str]:
    lowered = [n.lower() for n in needles]
    for stack in stacks:
        s = stack.lower()
        if all(n in s for n in lowered):
            return stack
    return None


def select_solution_stack(stacks: Sequence[str], runtime: str = "Corretto 17",
                          base_images: Sequence[str] = BASE_IMAGES) -> Optional[str]:
    """
    우선순위:
      1. 런타임 버전 정확히 포함 (예: "Corretto 17")
      2. 같은 런타임 계열 + 지정한 OS 베이스 이미지
      3. 같은 런타임 계열 아무거나
    맞는 게 없으면 None.
    """
    candidate = _first(stacks, runtime)
    if candidate:
        return candidate

    family = runtime_family(runtime)
    for image in base_images:
        candidate = _first(stacks, family, image)
        if candidate:
            return candidate

    return _first(stacks, family)


def list_solution_stacks(aws: AwsCli) -> list[str]:
    stacks = aws.call_json(
        "elasticbeanstalk",
        "list-available-solution-stacks",
        query="SolutionStacks",
    )
    return [str(s) for s in stacks or []]


def resolve_platform(aws: AwsCli, configured: str, runtime: str = "Corretto 17") -> str:
    """조회/선택에 실패하면 설정된 기본 플랫폼을 그대로 쓴다."""
    logger.info("리전 '%s' 의 Elastic Beanstalk 솔루션 스택을 조회합니다...", aws.region)
    try:
        stacks = list_solution_stacks(aws)
    except (CommandError, ValueError) as e:
        logger.warning("솔루션 스택 조회 실패: %s", e)
        stacks = []

    selected = select_solution_stack(stacks, runtime)
    if selected:
        logger.info("자동 선택된 솔루션 스택: %s", selected)
        return selected

    logger.info("리전 '%s' 에서 맞는 솔루션 스택을 찾지 못했습니다.", aws.region)
    logger.info("설정된 플랫폼으로 진행합니다: %s (리전에서 유효하지 않으면 실패할 수 있음)", configured)
    return configured
