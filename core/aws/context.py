"""
core/aws/context.py - 계정/리전 실행 컨텍스트

계정 ID, 리전, 파티션은 전역 상태가 아니라 AwsContext로 모든 작업에 명시적으로 전달합니다.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from core.exceptions import ConfigError, ExternalServiceError

from .client import get_client

logger = logging.getLogger(__name__)


def partition_for_region(region: str) -> str:
    """리전 코드로 ARN 파티션 결정"""
    if region.startswith("cn-"):
        return "aws-cn"
    if region.startswith("us-gov-"):
        return "aws-us-gov"
    return "aws"


@dataclass(frozen=True)
class AwsContext:
    """실행 컨텍스트

    Attributes:
        account_id: AWS 계정 ID (12자리)
        region: AWS 리전
        partition: ARN 파티션 (aws, aws-cn, aws-us-gov)
    """

    account_id: str
    region: str
    partition: str = "aws"

    def __post_init__(self):
        if not (len(self.account_id) == 12 and self.account_id.isdigit()):
            raise ConfigError("account_id", f"12자리 숫자가 아님: {self.account_id!r}")
        if not self.region:
            raise ConfigError("region", "리전이 비어 있습니다")

    @classmethod
    def for_region(cls, account_id: str, region: str) -> AwsContext:
        return cls(account_id=account_id, region=region, partition=partition_for_region(region))

    def role_arn(self, role: str) -> str:
        """Role 이름 또는 ARN을 전체 ARN으로 변환"""
        if role.startswith("arn:"):
            return role
        return f"arn:{self.partition}:iam::{self.account_id}:role/{role}"

    def vault_arn(self, vault_name: str) -> str:
        """Backup Vault ARN 구성 (API 응답이 없을 때의 대체값)"""
        return f"arn:{self.partition}:backup:{self.region}:{self.account_id}:backup-vault:{vault_name}"


def resolve_context(session: Any, region: str, account_id: str | None = None) -> AwsContext:
    """AwsContext 생성

    account_id가 없으면 STS get_caller_identity로 확인합니다.

    Args:
        session: boto3 Session
        region: AWS 리전
        account_id: 계정 ID (선택)

    Returns:
        AwsContext
    """
    if not account_id:
        sts = get_client(session, "sts", region_name=region)
        try:
            account_id = sts.get_caller_identity()["Account"]
        except ClientError as e:
            raise ExternalServiceError.from_client_error("sts", "get_caller_identity", e) from e
        except BotoCoreError as e:
            raise ConfigError("credentials", "AWS 자격 증명을 확인할 수 없습니다", cause=e) from e
        logger.debug(f"계정 ID 확인: {account_id}")

    return AwsContext.for_region(str(account_id), region)
