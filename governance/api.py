"""
governance/api.py - AWS Backup API 호출 래퍼

재시도 예산 내에서 API를 호출하고, 실패를 예외 계층으로 변환합니다.

    - 재시도 가능한 에러 (스로틀링, 타임아웃, 5xx): 백오프 후 재시도
    - 예산 소진: ReconciliationFailedError
    - 그 외 ClientError: ExternalServiceError 하위 클래스 (PermissionDeniedError 등)
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from core.exceptions import ExternalServiceError
from core.retry import DEFAULT_RETRY_CONFIG, RetryConfig, call_with_retry

T = TypeVar("T")

SERVICE = "backup"


def wrap_client_error(operation: str, entity: str, error: Exception) -> ExternalServiceError:
    """botocore 예외를 ExternalServiceError로 변환"""
    if isinstance(error, ClientError):
        return ExternalServiceError.from_client_error(SERVICE, operation, error, entity=entity)
    return ExternalServiceError(
        service=SERVICE,
        operation=operation,
        error_code=error.__class__.__name__,
        error_message=str(error),
        cause=error,
        entity=entity,
    )


def invoke(
    call: Callable[[], T],
    operation: str,
    entity: str,
    retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """재시도와 예외 변환을 적용하여 API 호출

    Args:
        call: 실행할 API 호출 (인자 없음)
        operation: API 작업 이름
        entity: 대상 리소스 (예: "vault/vault-a")
        retry_config: 재시도 설정
        sleep: 대기 함수

    Returns:
        API 응답
    """
    try:
        return call_with_retry(call, config=retry_config, entity=entity, operation=operation, sleep=sleep)
    except (ClientError, BotoCoreError) as e:
        raise wrap_client_error(operation, entity, e) from e


def paginate(client: Any, operation: str, result_key: str, **kwargs: Any) -> list[dict[str, Any]]:
    """paginator로 전체 항목 수집"""
    items: list[dict[str, Any]] = []
    paginator = client.get_paginator(operation)
    for page in paginator.paginate(**kwargs):
        items.extend(page.get(result_key, []))
    return items
