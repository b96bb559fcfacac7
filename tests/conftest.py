"""
tests/conftest.py - pytest 공통 픽스처

AWS Backup 클라이언트 모킹과 거버넌스 컴포넌트 픽스처를 제공합니다.

Usage:
    def test_something(backup_client, enforcer):
        # backup_client: MagicMock boto3 backup 클라이언트
        # enforcer: backup_client / tmp_path 원장을 사용하는 VaultProtectionEnforcer
        pass
"""

import os
import sys
from pathlib import Path
from typing import List
from unittest.mock import MagicMock

import pytest

# 프로젝트 루트를 sys.path에 추가
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from botocore.exceptions import ClientError  # noqa: E402

from core.aws.context import AwsContext  # noqa: E402
from core.retry import RetryConfig  # noqa: E402

ACCOUNT_ID = "123456789012"
REGION = "ap-northeast-2"


# =============================================================================
# 환경 설정
# =============================================================================


@pytest.fixture(autouse=True)
def setup_test_environment():
    """테스트 환경 설정"""
    os.environ.setdefault("AWS_DEFAULT_REGION", REGION)
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

    yield


# =============================================================================
# 헬퍼
# =============================================================================


def create_mock_client_error(
    error_code: str,
    error_message: str = "Test error",
    operation: str = "TestOperation",
) -> ClientError:
    """ClientError 생성 헬퍼"""
    return ClientError(
        {
            "Error": {
                "Code": error_code,
                "Message": error_message,
            }
        },
        operation,
    )


@pytest.fixture
def client_error():
    """ClientError 팩토리"""
    return create_mock_client_error


@pytest.fixture
def sleeps() -> List[float]:
    """재시도 대기 기록 (실제로 대기하지 않음)"""
    return []


@pytest.fixture
def no_sleep(sleeps):
    return sleeps.append


@pytest.fixture
def retry_config() -> RetryConfig:
    """테스트용 재시도 설정 (3회 재시도 = 최대 4회 시도, 지터 없음)"""
    return RetryConfig(max_retries=3, base_delay=0.01, max_delay=0.1, jitter=False)


@pytest.fixture
def context() -> AwsContext:
    return AwsContext.for_region(ACCOUNT_ID, REGION)


# =============================================================================
# AWS Backup 클라이언트 모킹
# =============================================================================


def vault_arn(name: str) -> str:
    return f"arn:aws:backup:{REGION}:{ACCOUNT_ID}:backup-vault:{name}"


@pytest.fixture
def backup_client(client_error):
    """AWS Backup 클라이언트 모킹

    - client.vaults: 존재하는 Vault 이름 집합 (describe_backup_vault 응답 결정)
    - client.pages: paginator 작업명 → 페이지 목록
    """
    client = MagicMock()
    client.vaults = {"vault-a"}
    client.pages = {
        "list_backup_plans": [{"BackupPlansList": []}],
        "list_backup_selections": [{"BackupSelectionsList": []}],
    }

    def _describe(BackupVaultName: str):
        if BackupVaultName not in client.vaults:
            raise client_error("ResourceNotFoundException", f"{BackupVaultName} not found")
        return {"BackupVaultName": BackupVaultName, "BackupVaultArn": vault_arn(BackupVaultName)}

    def _create_vault(BackupVaultName: str, **kwargs):
        client.vaults.add(BackupVaultName)
        return {"BackupVaultName": BackupVaultName, "BackupVaultArn": vault_arn(BackupVaultName)}

    def _paginator(operation: str):
        paginator = MagicMock()
        paginator.paginate.side_effect = lambda **kwargs: iter(client.pages[operation])
        return paginator

    client.describe_backup_vault.side_effect = _describe
    client.create_backup_vault.side_effect = _create_vault
    client.get_paginator.side_effect = _paginator
    client.put_backup_vault_access_policy.return_value = {}
    client.create_backup_plan.return_value = {
        "BackupPlanId": "plan-0001",
        "BackupPlanArn": f"arn:aws:backup:{REGION}:{ACCOUNT_ID}:backup-plan:plan-0001",
        "VersionId": "v1",
    }
    client.update_backup_plan.return_value = {
        "BackupPlanId": "plan-0001",
        "BackupPlanArn": f"arn:aws:backup:{REGION}:{ACCOUNT_ID}:backup-plan:plan-0001",
        "VersionId": "v2",
    }
    client.create_backup_selection.return_value = {"SelectionId": "sel-0001", "BackupPlanId": "plan-0001"}
    return client


# =============================================================================
# 거버넌스 컴포넌트
# =============================================================================


@pytest.fixture
def ledger(tmp_path):
    from governance.state import AppliedHashLedger

    return AppliedHashLedger(ACCOUNT_ID, REGION, state_dir=tmp_path / "state")


@pytest.fixture
def registry(backup_client, context, retry_config, no_sleep):
    from governance.vault_registry import VaultRegistry

    return VaultRegistry(backup_client, context, retry_config, sleep=no_sleep)


@pytest.fixture
def enforcer(backup_client, registry, ledger, retry_config, no_sleep):
    from governance.protection import VaultProtectionEnforcer

    return VaultProtectionEnforcer(backup_client, registry, ledger, retry_config, sleep=no_sleep)


@pytest.fixture
def catalog(backup_client, registry, retry_config, no_sleep):
    from governance.catalog import PolicyCatalog

    return PolicyCatalog(backup_client, registry, retry_config, sleep=no_sleep)


@pytest.fixture
def binder(backup_client, catalog, context, retry_config, no_sleep):
    from governance.selection import SelectionBinder

    return SelectionBinder(backup_client, catalog, context, retry_config, sleep=no_sleep)


# =============================================================================
# moto 통합 (선택적)
# =============================================================================

try:
    import moto

    @pytest.fixture
    def aws_credentials():
        """moto 사용 시 AWS 자격 증명 설정"""
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
        os.environ["AWS_DEFAULT_REGION"] = REGION

    @pytest.fixture
    def moto_session(aws_credentials):
        """moto를 사용한 boto3 Session"""
        with moto.mock_aws():
            import boto3

            yield boto3.Session(region_name=REGION)

except ImportError:
    # moto가 설치되지 않은 경우 더미 픽스처
    @pytest.fixture
    def moto_session():
        pytest.skip("moto not installed")
