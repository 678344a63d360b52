from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Mapping, Optional

from dotenv import dotenv_values


ENV_FILES_DEFAULT_ORDER = [".env", ".env.eb"]

DEFAULT_REGION = "us-west-2"
DEFAULT_PLATFORM = "64bit Amazon Linux 2 v3.4.12 running Corretto 17"
DEFAULT_RUNTIME = "Corretto 17"
DEFAULT_APP_PORT = "5000"
DEFAULT_INSTANCE_PROFILE = "aws-elasticbeanstalk-ec2-role"
DEFAULT_SERVICE_ROLE = "aws-elasticbeanstalk-service-role"
DEFAULT_JAR_PATH = os.path.join(
    "java-hello-world-with-gradle", "build", "libs", "jb-hello-world-0.1.0.jar"
)

VERSION_LABEL_FORMAT = "v-%Y%m%d%H%M%S"


class ConfigError(ValueError):
    """플래그/환경변수 검증 실패. CLI 에서는 usage 에러(exit 2)로 변환된다."""


def load_env(base_dir: str = ".",
             files: Optional[List[str]] = None,
             environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """
    base_dir 의 .env 계열 파일을 순서대로 읽어 하나의 dict 로 합친다.
    후순위 파일이 같은 키를 덮어쓰고, 실제 프로세스 환경변수가 파일 값보다 우선한다.
    os.environ 자체는 수정하지 않는다.
    """
    merged: Dict[str, str] = {}
    for name in files or ENV_FILES_DEFAULT_ORDER:
        path = os.path.join(base_dir, name)
        if not os.path.exists(path):
            continue
        for key, value in dotenv_values(path).items():
            # 값이 없는 키(None)는 dotenv 에서 선언만 된 것이므로 무시
            if value is not None:
                merged[key] = value

    merged.update(os.environ if environ is None else environ)
    return merged


def generate_version_label(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(VERSION_LABEL_FORMAT)


def _pick(flag: Optional[str], env: Mapping[str, str], name: str,
          default: Optional[str] = None) -> Optional[str]:
    # 우선순위: 플래그 > 환경변수 > 기본값 (빈 문자열은 미지정으로 본다)
    if flag:
        return flag
    value = env.get(name)
    if value:
        return value
    return default


def _validate_bucket_name(bucket: Optional[str]) -> None:
    if bucket and bucket.startswith("-"):
        raise ConfigError(
            f"잘못된 버킷 이름입니다: {bucket!r} ('-' 로 시작할 수 없습니다. 대시 없이 버킷 이름만 입력하세요)"
        )


@dataclass(frozen=True)
class DeployConfig:
    app_name: str
    env_name: str
    bucket: str
    version_label: str
    region: str = DEFAULT_REGION
    profile: Optional[str] = None
    platform: str = DEFAULT_PLATFORM
    runtime: str = DEFAULT_RUNTIME
    jar_path: str = DEFAULT_JAR_PATH
    app_port: str = DEFAULT_APP_PORT
    instance_profile: str = DEFAULT_INSTANCE_PROFILE
    service_role: str = DEFAULT_SERVICE_ROLE

    @property
    def zip_name(self) -> str:
        return f"{self.app_name}-{self.version_label}.zip"

    @property
    def bundle_key(self) -> str:
        return f"{self.app_name}/{self.version_label}/{self.zip_name}"

    @classmethod
    def resolve(cls,
                flags: Mapping[str, Optional[str]],
                env: Mapping[str, str],
                base_dir: str = ".",
                now: Optional[datetime] = None) -> "DeployConfig":
        """
        CLI 플래그와 환경변수(.env 포함)를 합쳐 배포 설정을 한 번에 만든다.
        필수값(app/env/bucket)이 없거나 버킷 이름이 잘못되면 ConfigError.
        """
        app_name = _pick(flags.get("app"), env, "EB_APP_NAME")
        env_name = _pick(flags.get("env"), env, "EB_ENV_NAME")
        bucket = _pick(flags.get("bucket"), env, "EB_S3_BUCKET")

        _validate_bucket_name(bucket)

        missing: List[str] = []
        if not app_name:
            missing.append("--app (EB_APP_NAME)")
        if not env_name:
            missing.append("--env (EB_ENV_NAME)")
        if not bucket:
            missing.append("--bucket (EB_S3_BUCKET)")
        if missing:
            raise ConfigError("필수 값이 누락되었습니다: " + ", ".join(missing))

        jar_path = _pick(flags.get("jar"), env, "EB_JAR_PATH",
                         os.path.join(base_dir, DEFAULT_JAR_PATH))

        return cls(
            app_name=app_name or "",
            env_name=env_name or "",
            bucket=bucket or "",
            version_label=flags.get("version") or generate_version_label(now),
            region=_pick(flags.get("region"), env, "AWS_REGION", DEFAULT_REGION) or DEFAULT_REGION,
            profile=_pick(flags.get("profile"), env, "AWS_PROFILE"),
            platform=_pick(flags.get("platform"), env, "EB_PLATFORM", DEFAULT_PLATFORM) or DEFAULT_PLATFORM,
            runtime=_pick(None, env, "EB_RUNTIME", DEFAULT_RUNTIME) or DEFAULT_RUNTIME,
            jar_path=jar_path or DEFAULT_JAR_PATH,
            app_port=_pick(None, env, "EB_APP_PORT", DEFAULT_APP_PORT) or DEFAULT_APP_PORT,
            instance_profile=_pick(None, env, "EB_INSTANCE_PROFILE",
                                   DEFAULT_INSTANCE_PROFILE) or DEFAULT_INSTANCE_PROFILE,
            service_role=_pick(None, env, "EB_SERVICE_ROLE",
                               DEFAULT_SERVICE_ROLE) or DEFAULT_SERVICE_ROLE,
        )


@dataclass(frozen=True)
class CleanupConfig:
    app_name: str
    env_name: Optional[str] = None
    bucket: Optional[str] = None
    region: str = DEFAULT_REGION
    profile: Optional[str] = None
    delete_bucket: bool = False
    delete_app: bool = False

    @property
    def app_prefix(self) -> str:
        return f"{self.app_name}/"

    @classmethod
    def resolve(cls,
                flags: Mapping[str, object],
                env: Mapping[str, str]) -> "CleanupConfig":
        def text(name: str) -> Optional[str]:
            value = flags.get(name)
            return str(value) if value else None

        app_name = _pick(text("app"), env, "EB_APP_NAME")
        bucket = _pick(text("bucket"), env, "EB_S3_BUCKET")

        if not app_name:
            raise ConfigError("필수 값이 누락되었습니다: --app (EB_APP_NAME)")
        _validate_bucket_name(bucket)

        return cls(
            app_name=app_name,
            env_name=_pick(text("env"), env, "EB_ENV_NAME"),
            bucket=bucket,
            region=_pick(text("region"), env, "AWS_REGION", DEFAULT_REGION) or DEFAULT_REGION,
            profile=_pick(text("profile"), env, "AWS_PROFILE"),
            delete_bucket=bool(flags.get("delete_bucket")),
            delete_app=bool(flags.get("delete_app")),
        )
