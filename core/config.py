"""
core/config.py - 중앙 설정 관리

환경 변수 기반의 실행 설정과 버전 정보를 제공합니다.

환경 변수:
    BGOV_REGION: 기본 리전 (기본: ap-northeast-2)
    BGOV_STATE_DIR: 적용 해시 원장 저장 디렉토리 (기본: {project_root}/temp/state)
    BGOV_MAX_RETRIES: 외부 호출 최대 재시도 횟수 (기본: 3)
    BGOV_CONNECT_TIMEOUT: 연결 타임아웃 초 (기본: 10)
    BGOV_READ_TIMEOUT: 읽기 타임아웃 초 (기본: 30)

Usage:
    from core.config import settings, get_default_region

    region = get_default_region()  # "ap-northeast-2"
    retry = settings.retry_config()
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from core.exceptions import ConfigError
from core.retry import RetryConfig

logger = logging.getLogger(__name__)

DEFAULT_REGION = "ap-northeast-2"
DEFAULT_VERSION = "0.1.0"

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(name, f"정수가 아님: {raw!r}", cause=e) from e


@dataclass
class Settings:
    """실행 설정

    Attributes:
        region: 기본 AWS 리전
        state_dir: 적용 해시 원장 디렉토리 (None이면 캐시 루트 하위)
        max_retries: 외부 호출 재시도 횟수
        base_delay: 재시도 기본 대기 시간 (초)
        connect_timeout: botocore 연결 타임아웃 (초)
        read_timeout: botocore 읽기 타임아웃 (초)
    """

    region: str = DEFAULT_REGION
    state_dir: str | None = None
    max_retries: int = 3
    base_delay: float = 1.0
    connect_timeout: int = 10
    read_timeout: int = 30

    @classmethod
    def from_env(cls) -> Settings:
        """환경 변수에서 설정 로드"""
        settings = cls(
            region=os.environ.get("BGOV_REGION") or os.environ.get("AWS_DEFAULT_REGION") or DEFAULT_REGION,
            state_dir=os.environ.get("BGOV_STATE_DIR") or None,
            max_retries=_env_int("BGOV_MAX_RETRIES", 3),
            connect_timeout=_env_int("BGOV_CONNECT_TIMEOUT", 10),
            read_timeout=_env_int("BGOV_READ_TIMEOUT", 30),
        )
        if settings.max_retries < 0:
            raise ConfigError("BGOV_MAX_RETRIES", "0 이상이어야 합니다")
        return settings

    def retry_config(self) -> RetryConfig:
        """외부 호출용 재시도 설정 생성"""
        return RetryConfig(max_retries=self.max_retries, base_delay=self.base_delay)


settings = Settings.from_env()


def get_default_region() -> str:
    """기본 리전 반환"""
    return settings.region


def get_version() -> str:
    """버전 문자열 반환

    프로젝트 루트의 version.txt 파일에서 버전을 읽어옴
    """
    version_file = PROJECT_ROOT / "version.txt"
    try:
        if version_file.exists():
            return version_file.read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.debug("Failed to read version file: %s", e)
    return DEFAULT_VERSION
