"""
governance/vault_registry.py - Backup Vault 레지스트리

보호 대상 Vault의 식별 정보와 존재 여부를 관리합니다.
Vault는 한 번 생성되면 갱신되지 않으며, 이 시스템에는 삭제 경로가 없습니다.

주요 구성 요소:
- VaultRegistry.create_vault: 신규 생성 (이미 있으면 AlreadyExistsError)
- VaultRegistry.ensure_vault: 멱등 생성 (반복 호출 안전)
- VaultRegistry.resolve: 이름으로 조회 (없으면 VaultNotFoundError)

Example:
    registry = VaultRegistry(get_client(session, "backup"), context)
    vault = registry.ensure_vault("vault-a")
    print(vault.arn)
"""

from __future__ import annotations

import logging
import re
import threading
import time
import uuid
from collections.abc import Callable
from typing import Any

from core.aws.context import AwsContext
from core.exceptions import (
    AlreadyExistsError,
    ExternalServiceError,
    ValidationError,
    VaultNotFoundError,
)
from core.retry import DEFAULT_RETRY_CONFIG, RetryConfig

from .api import invoke
from .models import ChangeAction, VaultHandle

logger = logging.getLogger(__name__)

# AWS Backup Vault 이름 규칙: 2~50자, 영문/숫자/하이픈/밑줄
VAULT_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\-_]{2,50}$")

REQUIRED_PERMISSIONS = {
    "write": [
        "backup:CreateBackupVault",
        "backup:DescribeBackupVault",
        "backup-storage:MountCapsule",
    ],
}


def validate_vault_name(name: str) -> str:
    """Vault 이름 검증 (외부 호출 전)"""
    if not isinstance(name, str) or not VAULT_NAME_PATTERN.match(name):
        raise ValidationError("vault_name", name, "2~50자의 영문/숫자/'-'/'_'")
    return name


class VaultRegistry:
    """Backup Vault 레지스트리

    조회된 Vault 핸들은 인스턴스 단위로 캐싱합니다 (Vault는 생성 후 불변).
    """

    def __init__(
        self,
        client: Any,
        context: AwsContext,
        retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.context = context
        self.retry_config = retry_config
        self._sleep = sleep
        self._handles: dict[str, VaultHandle] = {}
        self._lock = threading.Lock()

    def _remember(self, handle: VaultHandle) -> VaultHandle:
        with self._lock:
            self._handles[handle.name] = handle
        return handle

    def _cached(self, name: str) -> VaultHandle | None:
        with self._lock:
            return self._handles.get(name)

    def find(self, name: str) -> VaultHandle | None:
        """Vault 조회 (없으면 None)"""
        validate_vault_name(name)
        cached = self._cached(name)
        if cached is not None:
            return cached

        try:
            response = invoke(
                lambda: self.client.describe_backup_vault(BackupVaultName=name),
                operation="describe_backup_vault",
                entity=f"vault/{name}",
                retry_config=self.retry_config,
                sleep=self._sleep,
            )
        except ExternalServiceError as e:
            if e.error_code == "ResourceNotFoundException":
                return None
            raise

        return self._remember(VaultHandle.from_api(response, self.context.vault_arn(name)))

    def resolve(self, name: str, required_by: str | None = None) -> VaultHandle:
        """Vault 조회

        Raises:
            VaultNotFoundError: Vault가 아직 없음 (DependencyNotReadyError)
        """
        handle = self.find(name)
        if handle is None:
            raise VaultNotFoundError(name, required_by)
        return handle

    def create_vault(self, name: str, tags: dict[str, str] | None = None) -> VaultHandle:
        """Vault 생성

        CreatorRequestId는 호출 단위로 한 번 생성되어, 재시도 중 중복 생성을 방지합니다.

        Raises:
            AlreadyExistsError: 같은 이름의 Vault가 이미 있음
        """
        validate_vault_name(name)
        request_id = str(uuid.uuid4())
        params: dict[str, Any] = {"BackupVaultName": name, "CreatorRequestId": request_id}
        if tags:
            params["BackupVaultTags"] = dict(tags)

        try:
            response = invoke(
                lambda: self.client.create_backup_vault(**params),
                operation="create_backup_vault",
                entity=f"vault/{name}",
                retry_config=self.retry_config,
                sleep=self._sleep,
            )
        except ExternalServiceError as e:
            if e.error_code == "AlreadyExistsException":
                raise AlreadyExistsError("vault", name, cause=e.cause) from e
            raise

        handle = VaultHandle.from_api(response, self.context.vault_arn(name))
        logger.info(f"Vault 생성: {handle.name} ({handle.arn})")
        return self._remember(handle)

    def sync_vault(self, name: str, tags: dict[str, str] | None = None) -> tuple[VaultHandle, ChangeAction]:
        """Vault 멱등 생성 - 처리 결과 포함"""
        existing = self.find(name)
        if existing is not None:
            return existing, ChangeAction.UNCHANGED

        try:
            return self.create_vault(name, tags), ChangeAction.CREATED
        except AlreadyExistsError:
            # 동시 생성 경합: 다른 실행이 먼저 만들었음
            logger.debug(f"Vault 동시 생성 감지, 재조회: {name}")
            return self.resolve(name), ChangeAction.UNCHANGED

    def ensure_vault(self, name: str, tags: dict[str, str] | None = None) -> VaultHandle:
        """Vault 멱등 생성 (반복 호출 안전)"""
        handle, _ = self.sync_vault(name, tags)
        return handle

