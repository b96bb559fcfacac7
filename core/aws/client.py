"""
core/aws/client.py - boto3 Session/client 생성

bgov가 쓰는 client(backup, sts)는 모두 여기서 만들어집니다.
botocore 자체 재시도는 1회로 제한하고, 조정 단위 재시도는 ``core.retry``가 맡습니다.
connect/read 타임아웃이 항상 설정되어 외부 호출이 무기한 대기하지 않습니다.

Example:
    from core.aws.client import create_session, get_client

    session = create_session(profile="prod", region="ap-northeast-2")
    backup = get_client(session, "backup", region_name="ap-northeast-2", read_timeout=60)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import boto3

BOTOCORE_MAX_ATTEMPTS = 2
DEFAULT_CONNECT_TIMEOUT = 10  # 초
DEFAULT_READ_TIMEOUT = 30  # 초
USER_AGENT_EXTRA = "bgov"


def create_session(profile: str | None = None, region: str | None = None) -> boto3.Session:
    """프로파일 기반 Session (None이면 기본 자격 증명 체인)"""
    import boto3

    return boto3.Session(profile_name=profile, region_name=region)


def get_client(
    session: boto3.Session,
    service_name: str,
    region_name: str | None = None,
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT,
    read_timeout: int = DEFAULT_READ_TIMEOUT,
    **kwargs: Any,
) -> Any:
    """타임아웃이 적용된 boto3 client

    Args:
        session: boto3 Session
        service_name: "backup" 또는 "sts"
        region_name: 리전 (None이면 Session 기본값)
        connect_timeout: 연결 타임아웃 (초)
        read_timeout: 읽기 타임아웃 (초). 초과 시 호출 결과는 알 수 없는 상태로 취급됩니다.
        **kwargs: ``session.client()`` 추가 인자. ``config``가 있으면 기본 설정 위에 병합.
    """
    from botocore.config import Config

    config = Config(
        retries={"max_attempts": BOTOCORE_MAX_ATTEMPTS, "mode": "standard"},
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        user_agent_extra=USER_AGENT_EXTRA,
    )
    override = kwargs.pop("config", None)
    if override is not None:
        config = config.merge(override)

    return session.client(service_name, region_name=region_name, config=config, **kwargs)
