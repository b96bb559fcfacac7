"""
core/retry.py - AWS API 에러 분류 및 재시도 유틸리티

AWS API 호출의 에러 분류, 재시도 가능 여부 판단,
지수 백오프 재시도 실행을 제공합니다.

주요 구성 요소:
- ErrorCategory: 에러 카테고리
- RetryConfig: 재시도 설정 (지수 백오프 + 지터)
- categorize_error: 예외를 ErrorCategory로 분류
- get_error_code: 예외에서 에러 코드 추출
- is_retryable: 재시도 가능 여부 판단
- is_ambiguous: 서버 측 반영 여부를 알 수 없는 실패인지 판단
- call_with_retry: 재시도 예산 내에서 함수 실행

Example:
    from core.retry import RetryConfig, call_with_retry

    call_with_retry(
        lambda: backup.put_backup_vault_access_policy(...),
        config=RetryConfig(max_retries=5),
        entity="vault/vault-a",
    )
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from botocore.exceptions import (
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from core.exceptions import (
    ExternalServiceError,
    ReconciliationFailedError,
    TransientExternalError,
    is_access_denied,
    is_not_found,
    is_throttling,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorCategory(Enum):
    """에러 카테고리"""

    THROTTLING = "throttling"
    ACCESS_DENIED = "access_denied"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    NETWORK = "network"
    EXPIRED_TOKEN = "expired_token"
    INVALID_REQUEST = "invalid_request"
    SERVICE_ERROR = "service_error"
    UNKNOWN = "unknown"


@dataclass
class RetryConfig:
    """재시도 설정

    Attributes:
        max_retries: 최대 재시도 횟수 (0이면 재시도 안함)
        base_delay: 기본 대기 시간 (초)
        max_delay: 최대 대기 시간 (초)
        exponential_base: 지수 백오프 밑수
        jitter: 지터 사용 여부 (대기 시간에 랜덤성 추가)
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def get_delay(self, attempt: int) -> float:
        """재시도 대기 시간 계산

        Exponential backoff with optional jitter.

        Args:
            attempt: 현재 시도 횟수 (0부터 시작)

        Returns:
            대기 시간 (초)
        """
        delay = self.base_delay * (self.exponential_base**attempt)
        delay = min(delay, self.max_delay)

        if self.jitter:
            # Full jitter: [0, delay]
            delay = random.uniform(0, delay)

        return delay


# 기본 재시도 설정
DEFAULT_RETRY_CONFIG = RetryConfig()

# 재시도 가능한 AWS 에러 코드
RETRYABLE_ERROR_CODES: set[str] = {
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "TooManyRequestsException",
    "RateExceeded",
    "ServiceUnavailable",
    "ServiceUnavailableException",
    "InternalError",
    "InternalServiceError",
    "InternalFailure",
    "RequestTimeout",
    "RequestTimeoutException",
    "SlowDown",
}

# 요청이 서버에 도달했는지 알 수 없는 전송 계층 오류
AMBIGUOUS_ERRORS: tuple[type[Exception], ...] = (ReadTimeoutError, ConnectionClosedError)

# 요청이 서버에 도달하지 않은 전송 계층 오류
NETWORK_ERRORS: tuple[type[Exception], ...] = (
    EndpointConnectionError,
    ConnectTimeoutError,
    ConnectionError,
    TimeoutError,
)


def _response_code(error: Exception) -> str | None:
    """ClientError 응답의 에러 코드 (응답이 없는 전송 계층 오류는 None)"""
    if isinstance(error, ExternalServiceError):
        return error.error_code or ""
    response = getattr(error, "response", None)
    if not isinstance(response, dict):
        return None
    return str(response.get("Error", {}).get("Code", ""))


def categorize_error(error: Exception) -> ErrorCategory:
    """예외 객체를 분석하여 ErrorCategory로 분류

    ClientError의 경우 response에서 에러 코드를 추출하고,
    네트워크/타임아웃 에러는 타입으로 분류합니다.

    Args:
        error: 분류할 예외

    Returns:
        에러 카테고리
    """
    if is_throttling(error):
        return ErrorCategory.THROTTLING
    if is_access_denied(error):
        return ErrorCategory.ACCESS_DENIED
    if is_not_found(error):
        return ErrorCategory.NOT_FOUND

    error_code = _response_code(error)
    if error_code is not None:
        if "Timeout" in error_code:
            return ErrorCategory.TIMEOUT
        if error_code in ("ExpiredToken", "ExpiredTokenException"):
            return ErrorCategory.EXPIRED_TOKEN
        if error_code in RETRYABLE_ERROR_CODES:
            return ErrorCategory.SERVICE_ERROR
        if "Invalid" in error_code or "Malformed" in error_code or "Validation" in error_code:
            return ErrorCategory.INVALID_REQUEST

    if isinstance(error, (ReadTimeoutError, ConnectTimeoutError, TimeoutError)):
        return ErrorCategory.TIMEOUT

    if isinstance(error, NETWORK_ERRORS + AMBIGUOUS_ERRORS):
        return ErrorCategory.NETWORK

    return ErrorCategory.UNKNOWN


def get_error_code(error: Exception) -> str:
    """예외 객체에서 에러 코드 문자열 추출

    ClientError의 경우 response에서 Code를 추출하고,
    그 외에는 예외 클래스명을 반환합니다.
    """
    code = _response_code(error)
    if code is not None:
        return code or "Unknown"
    return error.__class__.__name__


def is_retryable(error: Exception) -> bool:
    """재시도 가능한 에러인지 확인

    RETRYABLE_ERROR_CODES에 포함된 에러 코드이거나
    네트워크/타임아웃 에러인 경우 True를 반환합니다.
    """
    if isinstance(error, TransientExternalError):
        return True

    error_code = _response_code(error)
    if error_code is not None:
        return error_code in RETRYABLE_ERROR_CODES

    return isinstance(error, NETWORK_ERRORS + AMBIGUOUS_ERRORS)


def is_ambiguous(error: Exception | None) -> bool:
    """서버 측 반영 여부를 알 수 없는 실패인지 확인

    읽기 타임아웃처럼 요청이 이미 처리되었을 수도 있는 경우 True.
    이 경우 성공/실패 어느 쪽으로도 간주하지 않고 다음 조정에서 다시 확인합니다.
    """
    return isinstance(error, AMBIGUOUS_ERRORS)


def call_with_retry(
    func: Callable[[], T],
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
    entity: str = "",
    operation: str = "",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """재시도 예산 내에서 함수 실행

    재시도 가능한 에러는 지수 백오프 후 다시 시도하고,
    그 외의 에러는 즉시 그대로 전파합니다.

    Args:
        func: 실행할 함수 (인자 없음)
        config: 재시도 설정
        entity: 로그/에러에 표시할 대상 리소스
        operation: 로그에 표시할 API 작업 이름
        sleep: 대기 함수 (테스트 시 교체)

    Returns:
        함수 실행 결과

    Raises:
        ReconciliationFailedError: 재시도 예산 소진 (cause에 마지막 에러)
    """
    last_error: Exception | None = None

    for attempt in range(config.max_attempts):
        try:
            return func()
        except Exception as e:
            if not is_retryable(e):
                raise
            last_error = e
            if attempt + 1 >= config.max_attempts:
                break
            delay = config.get_delay(attempt)
            logger.warning(
                f"{operation or 'call'} 재시도 {attempt + 1}/{config.max_retries} "
                f"[{entity}] ({get_error_code(e)}, {categorize_error(e).value}), {delay:.2f}초 대기"
            )
            sleep(delay)

    raise ReconciliationFailedError(entity or operation, config.max_attempts, cause=last_error)
