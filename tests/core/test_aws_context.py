"""
tests/core/test_aws_context.py - core/aws/context.py 테스트
"""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import NoCredentialsError

from core.aws.context import AwsContext, partition_for_region, resolve_context
from core.exceptions import ConfigError, PermissionDeniedError


class TestPartition:
    """partition_for_region 테스트"""

    @pytest.mark.parametrize(
        "region,partition",
        [
            ("ap-northeast-2", "aws"),
            ("us-east-1", "aws"),
            ("cn-north-1", "aws-cn"),
            ("us-gov-west-1", "aws-us-gov"),
        ],
    )
    def test_partition(self, region, partition):
        assert partition_for_region(region) == partition


class TestAwsContext:
    """AwsContext 테스트"""

    def test_role_name_expanded(self, context):
        """Role 이름은 계정 ARN으로 확장"""
        assert context.role_arn("AWSBackupDefaultServiceRole") == (
            "arn:aws:iam::123456789012:role/AWSBackupDefaultServiceRole"
        )

    def test_role_arn_kept(self, context):
        arn = "arn:aws:iam::999999999999:role/other"
        assert context.role_arn(arn) == arn

    def test_vault_arn(self, context):
        assert context.vault_arn("vault-a") == "arn:aws:backup:ap-northeast-2:123456789012:backup-vault:vault-a"

    def test_china_partition_arns(self):
        context = AwsContext.for_region("123456789012", "cn-north-1")
        assert context.partition == "aws-cn"
        assert context.role_arn("r").startswith("arn:aws-cn:iam::")

    @pytest.mark.parametrize("account_id", ["12345", "abcdefghijkl", ""])
    def test_invalid_account(self, account_id):
        """12자리 숫자가 아닌 계정 ID는 ConfigError"""
        with pytest.raises(ConfigError):
            AwsContext.for_region(account_id, "ap-northeast-2")

    def test_empty_region(self):
        with pytest.raises(ConfigError):
            AwsContext("123456789012", "")


class TestResolveContext:
    """resolve_context 테스트"""

    def test_explicit_account_skips_sts(self):
        """계정 ID가 주어지면 STS를 호출하지 않음"""
        session = MagicMock()

        context = resolve_context(session, "ap-northeast-2", account_id="111122223333")

        assert context.account_id == "111122223333"
        session.client.assert_not_called()

    def test_sts_lookup(self):
        session = MagicMock()
        session.client.return_value.get_caller_identity.return_value = {"Account": "444455556666"}

        context = resolve_context(session, "us-east-1")

        assert context.account_id == "444455556666"
        assert context.region == "us-east-1"

    def test_sts_access_denied(self, client_error):
        session = MagicMock()
        session.client.return_value.get_caller_identity.side_effect = client_error("AccessDenied")

        with pytest.raises(PermissionDeniedError):
            resolve_context(session, "ap-northeast-2")

    def test_no_credentials(self):
        """자격 증명 없음은 ConfigError"""
        session = MagicMock()
        session.client.return_value.get_caller_identity.side_effect = NoCredentialsError()

        with pytest.raises(ConfigError):
            resolve_context(session, "ap-northeast-2")

    def test_moto_sts(self, moto_session):
        """moto STS로 계정 확인"""
        context = resolve_context(moto_session, "ap-northeast-2")
        assert context.account_id == "123456789012"
        assert context.vault_arn("v").endswith(":backup-vault:v")
