"""
governance/protection.py - Vault 보호 정책 집행기

Vault가 존재하는 한, 어떤 주체도 복구 지점 삭제 / Vault 삭제 /
보호 정책 자체의 변경·삭제를 할 수 없도록 접근 정책을 유지합니다.

외부 API(put_backup_vault_access_policy)는 전송 계층에서 멱등이 보장되지 않으므로,
문서 내용의 해시를 원장과 비교하여 변경이 있을 때만 호출합니다.

    reconcile(vault)
      1. Vault 조회 (없으면 DependencyNotReadyError)
      2. build_document → content_hash
      3. 원장 해시와 같으면 종료 (외부 호출 없음)
      4. apply (재시도 예산 내 백오프)
      5. 적용 확인 후에만 해시 기록

Example:
    enforcer = VaultProtectionEnforcer(backup, registry, ledger)
    result = enforcer.reconcile("vault-a")
    print(result.outcome)  # ProtectionOutcome.APPLIED
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable, Iterable
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from core.exceptions import (
    ExternalServiceError,
    GovernanceError,
    InvalidDocumentError,
    ReconciliationFailedError,
)
from core.retry import DEFAULT_RETRY_CONFIG, RetryConfig, call_with_retry, is_ambiguous, is_retryable

from .api import invoke, wrap_client_error
from .models import (
    MANDATORY_DENY_ACTIONS,
    PROTECTION_STATEMENT_SID,
    WILDCARD_PRINCIPAL,
    ChangeAction,
    DriftReport,
    Effect,
    PolicyStatement,
    ProtectionOutcome,
    ProtectionPolicyDocument,
    ProtectionResult,
    VaultHandle,
)
from .state import AppliedHashLedger, AppliedRecord
from .vault_registry import VaultRegistry

logger = logging.getLogger(__name__)

REQUIRED_PERMISSIONS = {
    "write": [
        "backup:PutBackupVaultAccessPolicy",
        "backup:GetBackupVaultAccessPolicy",
    ],
}


def build_document(vault: VaultHandle, extra_actions: Iterable[str] = ()) -> ProtectionPolicyDocument:
    """Vault 보호 정책 문서 생성

    Vault ARN만으로 결정되는 순수 함수입니다. 필수 거부 액션은 항상 먼저,
    고정된 순서로 들어가며 추가 액션은 그 뒤에 중복 없이 붙습니다.

    Args:
        vault: 대상 Vault
        extra_actions: 추가로 거부할 액션

    Returns:
        ProtectionPolicyDocument
    """
    actions = list(MANDATORY_DENY_ACTIONS)
    for action in extra_actions:
        if action not in actions:
            actions.append(action)

    statement = PolicyStatement(
        sid=PROTECTION_STATEMENT_SID,
        effect=Effect.DENY,
        principal=WILDCARD_PRINCIPAL,
        actions=tuple(actions),
        resource=vault.arn,
    )
    return ProtectionPolicyDocument(vault_name=vault.name, statements=(statement,))


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def _remote_denied(policy: dict[str, Any]) -> tuple[set[str], set[str]]:
    """원격 정책에서 전체 주체 대상 Deny 액션과 Resource 목록 추출"""
    actions: set[str] = set()
    resources: set[str] = set()
    statements = policy.get("Statement") or []
    if isinstance(statements, dict):
        statements = [statements]
    for statement in statements:
        if not isinstance(statement, dict) or statement.get("Effect") != Effect.DENY.value:
            continue
        principal = statement.get("Principal")
        if isinstance(principal, dict):
            principal = principal.get("AWS")
        if WILDCARD_PRINCIPAL not in _as_list(principal):
            continue
        actions.update(_as_list(statement.get("Action")))
        resources.update(_as_list(statement.get("Resource")))
    return actions, resources


class VaultProtectionEnforcer:
    """Vault 보호 정책 집행기

    reconcile은 재진입 가능하며, 정책 정의와 별개의 주기 타이머에서 실행해도 안전합니다.
    Vault별 문서는 서로 독립이므로 Vault 단위 락만 사용합니다.
    """

    def __init__(
        self,
        client: Any,
        registry: VaultRegistry,
        ledger: AppliedHashLedger,
        retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
        extra_denied_actions: Iterable[str] = (),
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.registry = registry
        self.ledger = ledger
        self.retry_config = retry_config
        self.extra_denied_actions = tuple(extra_denied_actions)
        self._sleep = sleep
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _vault_lock(self, vault_name: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(vault_name)
            if lock is None:
                lock = self._locks[vault_name] = threading.Lock()
            return lock

    def build_document(self, vault: VaultHandle) -> ProtectionPolicyDocument:
        """보호 정책 문서 생성 (필수 거부 액션 검증 포함)"""
        document = build_document(vault, self.extra_denied_actions)
        missing = document.missing_mandatory_actions()
        if missing:
            raise InvalidDocumentError(vault.name, missing)
        return document

    def apply(self, vault: VaultHandle, document: ProtectionPolicyDocument) -> None:
        """보호 정책 문서를 외부 API로 전송 (단일 시도)

        Raises:
            TransientExternalError: 스로틀링/5xx (재시도 대상)
            PermissionDeniedError: 권한 부족 (치명적)
            ExternalServiceError: 그 외 거부 (잘못된 문서, 자격 증명 없음 등)

        재시도 가능한 전송 계층 오류(타임아웃, 연결 실패)는 변환하지 않고 그대로 전파합니다.
        """
        try:
            self.client.put_backup_vault_access_policy(
                BackupVaultName=vault.name,
                Policy=document.canonical_json(),
            )
        except ClientError as e:
            raise wrap_client_error("put_backup_vault_access_policy", f"vault/{vault.name}", e) from e
        except BotoCoreError as e:
            if is_retryable(e):
                raise
            raise wrap_client_error("put_backup_vault_access_policy", f"vault/{vault.name}", e) from e

    def needs_apply(self, vault_name: str, document: ProtectionPolicyDocument) -> bool:
        """원장 해시와 비교하여 적용이 필요한지 확인"""
        record = self.ledger.get(vault_name)
        return record is None or record.applied_hash != document.content_hash

    def reconcile(self, vault_name: str, force: bool = False) -> ProtectionResult:
        """보호 정책 조정

        Args:
            vault_name: Vault 이름
            force: 원장 해시가 같아도 다시 적용 (드리프트 보정용)

        Returns:
            ProtectionResult (UNCHANGED / APPLIED / PENDING)

        Raises:
            DependencyNotReadyError: Vault가 아직 없음
            ReconciliationFailedError: 재시도 예산 소진 (해시 미갱신)
            PermissionDeniedError: 권한 부족 (재시도 없음)
        """
        with self._vault_lock(vault_name):
            vault = self.registry.resolve(vault_name, required_by=f"protection/{vault_name}")
            document = self.build_document(vault)
            digest = document.content_hash

            if not force and not self.needs_apply(vault_name, document):
                logger.debug(f"보호 정책 변경 없음: {vault_name} ({digest[:12]})")
                return ProtectionResult(vault_name, ProtectionOutcome.UNCHANGED, digest)

            attempts = 0

            def _put() -> None:
                nonlocal attempts
                attempts += 1
                self.apply(vault, document)

            try:
                call_with_retry(
                    _put,
                    config=self.retry_config,
                    entity=f"vault/{vault_name}",
                    operation="put_backup_vault_access_policy",
                    sleep=self._sleep,
                )
            except ReconciliationFailedError as e:
                self.ledger.mark_pending(vault_name, digest, str(e.cause or e))
                if is_ambiguous(e.cause):
                    logger.warning(f"보호 정책 적용 결과 불명, 다음 조정에서 재확인: {vault_name}")
                    return ProtectionResult(
                        vault_name,
                        ProtectionOutcome.PENDING,
                        digest,
                        attempts=attempts,
                        message=str(e.cause),
                    )
                raise
            except GovernanceError as e:
                self.ledger.mark_pending(vault_name, digest, str(e))
                raise

            # 외부 서비스가 확인한 뒤에만 기록
            if self.ledger.record_applied(vault_name, digest) is None:
                logger.warning(f"보호 정책은 적용됐으나 원장 기록 실패, 다음 조정에서 재적용: {vault_name}")
                return ProtectionResult(
                    vault_name,
                    ProtectionOutcome.PENDING,
                    digest,
                    attempts=attempts,
                    message="원장 기록 실패 (락 타임아웃)",
                )
            logger.info(f"보호 정책 적용: {vault_name} ({digest[:12]}, {attempts}회 시도)")
            return ProtectionResult(vault_name, ProtectionOutcome.APPLIED, digest, attempts=attempts)

    def preview(self, vault_name: str) -> ChangeAction:
        """외부 변경 없이 reconcile의 예상 결과 계산

        Vault가 아직 없으면 같은 패스에서 생성된 뒤 적용될 것이므로 APPLIED로 봅니다.
        """
        vault = self.registry.find(vault_name) or VaultHandle(vault_name, self.registry.context.vault_arn(vault_name))
        document = self.build_document(vault)
        return ChangeAction.APPLIED if self.needs_apply(vault_name, document) else ChangeAction.UNCHANGED

    def status(self, vault_name: str) -> AppliedRecord | None:
        """원장에 기록된 적용 상태"""
        return self.ledger.get(vault_name)

    def detect_drift(self, vault_name: str) -> DriftReport:
        """원격에 적용된 보호 정책과 의도한 문서 비교

        드리프트는 에러가 아니라 reconcile(force=True)의 계기입니다.
        AWS가 정책을 재포맷할 수 있으므로 바이트 비교 대신 의미 비교를 합니다.
        """
        vault = self.registry.resolve(vault_name, required_by=f"protection/{vault_name}")
        document = self.build_document(vault)
        record = self.ledger.get(vault_name)
        applied_hash = record.applied_hash if record else None

        try:
            response = invoke(
                lambda: self.client.get_backup_vault_access_policy(BackupVaultName=vault_name),
                operation="get_backup_vault_access_policy",
                entity=f"vault/{vault_name}",
                retry_config=self.retry_config,
                sleep=self._sleep,
            )
        except ExternalServiceError as e:
            if e.error_code == "ResourceNotFoundException":
                return DriftReport(
                    vault_name=vault_name,
                    intended_hash=document.content_hash,
                    applied_hash=applied_hash,
                    remote_present=False,
                    missing_actions=sorted(document.denied_actions),
                )
            raise

        try:
            remote = json.loads(response.get("Policy") or "{}")
        except json.JSONDecodeError:
            logger.warning(f"원격 정책 파싱 실패: {vault_name}")
            remote = {}

        actions, resources = _remote_denied(remote)
        intended = document.statements[0]
        return DriftReport(
            vault_name=vault_name,
            intended_hash=document.content_hash,
            applied_hash=applied_hash,
            remote_present=True,
            missing_actions=[a for a in intended.actions if a not in actions],
            resource_mismatch=intended.resource not in resources and "*" not in resources,
        )
