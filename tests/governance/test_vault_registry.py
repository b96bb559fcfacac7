"""
tests/governance/test_vault_registry.py - governance/vault_registry.py 테스트
"""

import pytest

from core.exceptions import (
    AlreadyExistsError,
    DependencyNotReadyError,
    PermissionDeniedError,
    ValidationError,
    VaultNotFoundError,
)
from governance.models import ChangeAction


class TestVaultRegistry:
    """VaultRegistry 테스트"""

    def test_find_existing(self, registry, backup_client):
        handle = registry.find("vault-a")

        assert handle.name == "vault-a"
        assert handle.arn.endswith(":backup-vault:vault-a")

    def test_find_cached(self, registry, backup_client):
        """Vault는 불변이므로 한 번만 조회"""
        registry.find("vault-a")
        registry.find("vault-a")
        assert backup_client.describe_backup_vault.call_count == 1

    def test_find_missing(self, registry):
        assert registry.find("vault-x") is None

    def test_resolve_missing(self, registry):
        with pytest.raises(VaultNotFoundError) as exc_info:
            registry.resolve("vault-x", required_by="plan/daily")
        assert isinstance(exc_info.value, DependencyNotReadyError)
        assert exc_info.value.required_by == "plan/daily"

    @pytest.mark.parametrize("name", ["a", "has space", "x" * 51, "vault.a"])
    def test_invalid_name(self, registry, backup_client, name):
        """잘못된 이름은 외부 호출 없이 ValidationError"""
        with pytest.raises(ValidationError):
            registry.find(name)
        backup_client.describe_backup_vault.assert_not_called()

    def test_create_vault(self, registry, backup_client):
        handle = registry.create_vault("vault-b", tags={"team": "infra"})

        assert handle.name == "vault-b"
        kwargs = backup_client.create_backup_vault.call_args.kwargs
        assert kwargs["BackupVaultTags"] == {"team": "infra"}
        assert kwargs["CreatorRequestId"]

    def test_create_vault_already_exists(self, registry, backup_client, client_error):
        backup_client.create_backup_vault.side_effect = client_error("AlreadyExistsException")

        with pytest.raises(AlreadyExistsError):
            registry.create_vault("vault-a")

    def test_ensure_vault_idempotent(self, registry, backup_client):
        """반복 호출해도 한 번만 생성"""
        first, action = registry.sync_vault("vault-b")
        second = registry.ensure_vault("vault-b")

        assert action == ChangeAction.CREATED
        assert first == second
        assert backup_client.create_backup_vault.call_count == 1

    def test_sync_existing(self, registry, backup_client):
        _, action = registry.sync_vault("vault-a")
        assert action == ChangeAction.UNCHANGED
        backup_client.create_backup_vault.assert_not_called()

    def test_sync_race(self, registry, backup_client, client_error):
        """동시 생성 경합 시 재조회"""

        def _lost_race(BackupVaultName, **kwargs):
            backup_client.vaults.add(BackupVaultName)
            raise client_error("AlreadyExistsException")

        backup_client.create_backup_vault.side_effect = _lost_race

        handle, action = registry.sync_vault("vault-b")

        assert handle.name == "vault-b"
        assert action == ChangeAction.UNCHANGED

    def test_access_denied(self, registry, backup_client, client_error):
        backup_client.describe_backup_vault.side_effect = client_error("AccessDeniedException")

        with pytest.raises(PermissionDeniedError):
            registry.find("vault-a")
        assert backup_client.describe_backup_vault.call_count == 1
