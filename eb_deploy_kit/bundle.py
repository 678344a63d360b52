"""
bundle
------

jar 한 개를 Elastic Beanstalk 소스 번들(zip)로 묶는다.
Java 플랫폼은 zip 루트에 jar 하나만 있으면 그대로 실행한다.
"""

from __future__ import annotations

import shutil
import tempfile
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from .logging_utils import get_logger


logger = get_logger(__name__)


class ArtifactNotFoundError(FileNotFoundError):
    """배포할 jar 가 없음. CLI 에서 exit 4 로 변환된다."""


@dataclass(frozen=True)
class Bundle:
    zip_path: Path
    zip_name: str
    key: str


def bundle_key(app_name: str, version_label: str) -> str:
    return f"{app_name}/{version_label}/{app_name}-{version_label}.zip"


def check_artifact(jar_path: str) -> Path:
    path = Path(jar_path)
    if not path.is_file():
        raise ArtifactNotFoundError(
            f"jar 를 찾을 수 없습니다: {jar_path}\n"
            "먼저 Gradle 빌드를 실행하세요. 예: 프로젝트 폴더에서 ./gradlew bootJar"
        )
    return path


@contextmanager
def package_artifact(jar_path: str, app_name: str, version_label: str) -> Iterator[Bundle]:
    """
    임시 디렉토리에 jar 를 복사하고 `{app}-{version}.zip` 으로 압축한다.
    with 블록을 벗어나면(예외/인터럽트 포함) 임시 디렉토리는 항상 삭제된다.
    """
    jar = check_artifact(jar_path)
    key = bundle_key(app_name, version_label)
    zip_name = key.rsplit("/", 1)[-1]

    with tempfile.TemporaryDirectory(prefix="eb-bundle-") as tmpdir:
        staged = Path(tmpdir) / jar.name
        shutil.copy2(jar, staged)

        zip_path = Path(tmpdir) / zip_name
        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.write(staged, arcname=jar.name)

        logger.info("소스 번들 생성: %s (%s)", zip_name, jar.name)
        yield Bundle(zip_path=zip_path, zip_name=zip_name, key=key)
