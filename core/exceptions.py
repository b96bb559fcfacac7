"""
core/exceptions.py - 통합 예외 계층 구조

백업 거버넌스 전체에서 사용되는 예외 클래스들을 정의합니다.
일관된 예외 처리와 에러 메시지를 제공합니다.

예외 계층 구조:
    GovernanceError (베이스)
    ├── ValidationError (입력 검증, 재시도 없음)
    │   ├── InvalidScheduleError
    │   ├── InvalidRetentionError
    │   ├── InvalidPredicateError
    │   └── InvalidDocumentError
    ├── DependencyNotReadyError (선행 리소스 없음, 호출 순서 조정 필요)
    │   ├── VaultNotFoundError
    │   └── PlanNotFoundError
    ├── AlreadyExistsError
    ├── ExternalServiceError (AWS API 호출 실패)
    │   ├── TransientExternalError (타임아웃, 스로틀링 - 재시도 대상)
    │   ├── PermissionDeniedError (치명적, 재시도 없음)
    │   └── QuotaExceededError
    ├── ReconciliationFailedError (재시도 예산 소진)
    └── ConfigError (설정 관련)

Usage:
    from core.exceptions import ExternalServiceError, is_access_denied

    try:
        backup.put_backup_vault_access_policy(...)
    except ClientError as e:
        raise ExternalServiceError.from_client_error(
            service="backup",
            operation="put_backup_vault_access_policy",
            client_error=e,
        )
"""

from typing import Any, Dict, Optional

# =============================================================================
# 베이스 예외
# =============================================================================


class GovernanceError(Exception):
    """백업 거버넌스 기본 예외 클래스

    모든 커스텀 예외의 베이스 클래스입니다.

    Attributes:
        message: 에러 메시지
        cause: 원인 예외 (체이닝용)
        details: 추가 상세 정보
    """

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.details = details or {}

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message}: {self.cause}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """예외 정보를 딕셔너리로 반환"""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "cause": str(self.cause) if self.cause else None,
            "details": self.details,
        }


# =============================================================================
# 입력 검증 예외
# =============================================================================


class ValidationError(GovernanceError):
    """입력 검증 오류

    외부 호출 전에 즉시 발생하며 재시도 대상이 아닙니다.
    """

    def __init__(
        self,
        field: str,
        value: Any,
        expected: str,
        cause: Optional[Exception] = None,
    ):
        message = f"검증 오류 [{field}]: 예상값 '{expected}', 실제값 '{value}'"
        super().__init__(message, cause)
        self.field = field
        self.value = value
        self.expected = expected
        self.details.update(
            {
                "field": field,
                "value": str(value),
                "expected": expected,
            }
        )


class InvalidScheduleError(ValidationError):
    """cron 스케줄 표현식 오류"""

    def __init__(self, expression: str, reason: str, cause: Optional[Exception] = None):
        super().__init__("schedule", expression, reason, cause)
        self.expression = expression
        self.reason = reason


class InvalidRetentionError(ValidationError):
    """보존 기간 오류 (0 이하)"""

    def __init__(self, value: Any):
        super().__init__("retention_days", value, "1 이상의 정수")


class InvalidPredicateError(ValidationError):
    """선택 조건(태그 predicate) 구조 오류"""

    def __init__(self, selection: str, reason: str):
        super().__init__(f"predicate[{selection}]", reason, "1개 이상의 {key, op, value} 조건")
        self.selection = selection
        self.reason = reason


class InvalidDocumentError(ValidationError):
    """보호 정책 문서가 필수 거부 액션을 포함하지 않음"""

    def __init__(self, vault_name: str, missing: list[str]):
        super().__init__(f"policy[{vault_name}]", f"누락: {', '.join(missing)}", "필수 거부 액션 전체")
        self.vault_name = vault_name
        self.missing = missing


# =============================================================================
# 의존성 예외
# =============================================================================


class DependencyNotReadyError(GovernanceError):
    """참조한 선행 리소스가 아직 없음

    호출자가 작업 순서를 조정해야 합니다 (Vault → Plan → Selection).
    """

    def __init__(self, kind: str, name: str, required_by: Optional[str] = None):
        message = f"선행 리소스 없음 [{kind}/{name}]"
        if required_by:
            message = f"{message} (참조: {required_by})"
        super().__init__(message)
        self.kind = kind
        self.name = name
        self.required_by = required_by
        self.details.update({"kind": kind, "name": name, "required_by": required_by})


class VaultNotFoundError(DependencyNotReadyError):
    """Backup Vault 없음"""

    def __init__(self, name: str, required_by: Optional[str] = None):
        super().__init__("vault", name, required_by)


class PlanNotFoundError(DependencyNotReadyError):
    """Backup Plan 없음"""

    def __init__(self, name: str, required_by: Optional[str] = None):
        super().__init__("plan", name, required_by)


class AlreadyExistsError(GovernanceError):
    """같은 이름의 리소스가 이미 존재"""

    def __init__(self, kind: str, name: str, cause: Optional[Exception] = None):
        super().__init__(f"이미 존재함 [{kind}/{name}]", cause)
        self.kind = kind
        self.name = name
        self.details.update({"kind": kind, "name": name})


# =============================================================================
# 외부 서비스 예외
# =============================================================================


class ExternalServiceError(GovernanceError):
    """AWS API 호출 관련 예외

    boto3/botocore의 ClientError를 래핑하여 일관된 예외 처리를 제공합니다.
    """

    def __init__(
        self,
        service: str,
        operation: str,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        cause: Optional[Exception] = None,
        entity: Optional[str] = None,
    ):
        message = f"{service}.{operation}"
        if entity:
            message = f"{message} [{entity}]"
        if error_code:
            message = f"{message} 실패 ({error_code})"
        if error_message:
            message = f"{message}: {error_message}"

        super().__init__(message, cause)
        self.service = service
        self.operation = operation
        self.error_code = error_code
        self.error_message = error_message
        self.entity = entity
        self.details.update(
            {
                "service": service,
                "operation": operation,
                "error_code": error_code,
                "entity": entity,
            }
        )

    @classmethod
    def from_client_error(
        cls,
        service: str,
        operation: str,
        client_error: Exception,
        entity: Optional[str] = None,
    ) -> "ExternalServiceError":
        """botocore.exceptions.ClientError로부터 생성

        에러 코드에 따라 알맞은 하위 클래스를 선택합니다.

        Args:
            service: AWS 서비스 이름
            operation: API 작업 이름
            client_error: ClientError 예외
            entity: 관련 리소스 이름 (선택)

        Returns:
            ExternalServiceError (또는 하위 클래스) 인스턴스
        """
        error_code = None
        error_message = None

        # ClientError 형식 파싱
        response = getattr(client_error, "response", None)
        if isinstance(response, dict):
            error_info = response.get("Error", {})
            error_code = error_info.get("Code")
            error_message = error_info.get("Message")

        klass = cls
        if cls is ExternalServiceError:
            if is_access_denied(client_error):
                klass = PermissionDeniedError
            elif error_code in QUOTA_ERROR_CODES:
                klass = QuotaExceededError
            elif is_throttling(client_error) or error_code in TRANSIENT_ERROR_CODES:
                klass = TransientExternalError

        return klass(
            service=service,
            operation=operation,
            error_code=error_code,
            error_message=error_message,
            cause=client_error,
            entity=entity,
        )


class TransientExternalError(ExternalServiceError):
    """일시적 외부 오류 (타임아웃, 스로틀링, 네트워크) - 재시도 대상"""

    pass


class PermissionDeniedError(ExternalServiceError):
    """자격 증명 권한 부족 - 운영자 개입 없이는 성공할 수 없으므로 재시도하지 않음"""

    pass


class QuotaExceededError(ExternalServiceError):
    """서비스 한도 초과"""

    pass


class ReconciliationFailedError(GovernanceError):
    """재시도 예산 내에 조정(reconcile)이 성공하지 못함

    적용된 해시는 갱신되지 않으며, 다음 조정 패스에서 다시 시도됩니다.
    """

    def __init__(self, entity: str, attempts: int, cause: Optional[Exception] = None):
        super().__init__(f"조정 실패 [{entity}]: {attempts}회 시도", cause)
        self.entity = entity
        self.attempts = attempts
        self.details.update({"entity": entity, "attempts": attempts})


# =============================================================================
# 설정 관련 예외
# =============================================================================


class ConfigError(GovernanceError):
    """설정 관련 예외"""

    def __init__(
        self,
        key: str,
        message: str,
        cause: Optional[Exception] = None,
    ):
        full_message = f"설정 오류 [{key}]: {message}"
        super().__init__(full_message, cause)
        self.config_key = key
        self.details["config_key"] = key


# =============================================================================
# 예외 유틸리티 함수
# =============================================================================

ACCESS_DENIED_CODES = {
    "AccessDenied",
    "AccessDeniedException",
    "UnauthorizedAccess",
    "UnauthorizedOperation",
}

THROTTLING_CODES = {
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "TooManyRequestsException",
    "RateExceeded",
}

NOT_FOUND_CODES = {
    "ResourceNotFoundException",
    "NotFoundException",
    "NoSuchEntity",
}

QUOTA_ERROR_CODES = {
    "LimitExceededException",
    "ServiceQuotaExceededException",
}

TRANSIENT_ERROR_CODES = {
    "ServiceUnavailable",
    "ServiceUnavailableException",
    "InternalError",
    "InternalServiceError",
    "InternalFailure",
    "RequestTimeout",
    "RequestTimeoutException",
}


def _error_code(error: Exception) -> Optional[str]:
    if isinstance(error, ExternalServiceError):
        return error.error_code
    response = getattr(error, "response", None) or {}
    code: Optional[str] = response.get("Error", {}).get("Code") if isinstance(response, dict) else None
    return code


def is_access_denied(error: Exception) -> bool:
    """액세스 거부 오류인지 확인

    Args:
        error: 확인할 예외

    Returns:
        액세스 거부 오류이면 True
    """
    return _error_code(error) in ACCESS_DENIED_CODES


def is_throttling(error: Exception) -> bool:
    """스로틀링 오류인지 확인"""
    return _error_code(error) in THROTTLING_CODES


def is_not_found(error: Exception) -> bool:
    """리소스를 찾을 수 없는 오류인지 확인"""
    return _error_code(error) in NOT_FOUND_CODES


def is_already_exists(error: Exception) -> bool:
    """이미 존재하는 리소스 오류인지 확인"""
    return _error_code(error) in ("AlreadyExistsException", "AlreadyExists")


def format_error_for_user(error: Exception) -> str:
    """사용자에게 표시할 에러 메시지 포맷팅

    Args:
        error: 예외

    Returns:
        사용자 친화적인 에러 메시지
    """
    if isinstance(error, GovernanceError):
        # 커스텀 예외는 이미 포맷팅됨
        return str(error)

    # boto3 ClientError
    response = getattr(error, "response", None)
    if isinstance(response, dict):
        error_info = response.get("Error", {})
        code = error_info.get("Code", "UnknownError")
        message = error_info.get("Message", str(error))

        friendly_messages = {
            "AccessDenied": "권한이 없습니다. IAM 정책을 확인하세요.",
            "AccessDeniedException": "권한이 없습니다. IAM 정책을 확인하세요.",
            "ExpiredToken": "인증 토큰이 만료되었습니다. 다시 로그인하세요.",
            "InvalidClientTokenId": "잘못된 자격 증명입니다.",
            "ThrottlingException": "요청이 너무 많습니다. 잠시 후 다시 시도하세요.",
        }

        return friendly_messages.get(code, f"{code}: {message}")

    return str(error)
