"""
tests/governance/test_models.py - governance/models.py 및 보호 정책 문서 생성 테스트
"""

import json

from governance.models import (
    MANDATORY_DENY_ACTIONS,
    BackupPlan,
    ChangeAction,
    DriftReport,
    PlanRule,
    SelectionRule,
    TagCondition,
    VaultHandle,
)
from governance.protection import build_document

VAULT = VaultHandle("vault-a", "arn:aws:backup:ap-northeast-2:123456789012:backup-vault:vault-a")


class TestProtectionDocument:
    """보호 정책 문서 테스트"""

    def test_mandatory_actions_first(self):
        """필수 거부 액션 4개가 고정 순서로 포함"""
        document = build_document(VAULT)
        statement = document.to_dict()["Statement"][0]

        assert statement["Effect"] == "Deny"
        assert statement["Principal"] == {"AWS": "*"}
        assert statement["Resource"] == VAULT.arn
        assert statement["Action"] == list(MANDATORY_DENY_ACTIONS)
        assert document.missing_mandatory_actions() == []

    def test_extra_actions_appended_once(self):
        document = build_document(VAULT, ["backup:UpdateRecoveryPointLifecycle", "backup:DeleteBackupVault"])
        actions = document.statements[0].actions

        assert actions[:4] == MANDATORY_DENY_ACTIONS
        assert actions[4:] == ("backup:UpdateRecoveryPointLifecycle",)

    def test_canonical_json_is_compact(self):
        """공백 없는 정규 직렬화"""
        text = build_document(VAULT).canonical_json()

        assert " " not in text
        assert json.loads(text)["Version"] == "2012-10-17"

    def test_hash_stable(self):
        """같은 입력은 항상 같은 해시"""
        assert build_document(VAULT).content_hash == build_document(VAULT).content_hash
        assert len(build_document(VAULT).content_hash) == 64

    def test_hash_changes_with_content(self):
        other = VaultHandle("vault-b", VAULT.arn.replace("vault-a", "vault-b"))
        assert build_document(VAULT).content_hash != build_document(other).content_hash
        assert build_document(VAULT).content_hash != build_document(VAULT, ["backup:X"]).content_hash


class TestPlanModels:
    """Backup Plan 모델 테스트"""

    def test_rule_to_api(self):
        rule = PlanRule("daily", "cron(0 3 * * ? *)", "vault-a", 14)
        api = rule.to_api()

        assert api["RuleName"] == "daily"
        assert api["TargetBackupVaultName"] == "vault-a"
        assert api["Lifecycle"] == {"DeleteAfterDays": 14}
        assert api["ScheduleExpressionTimezone"] == "Etc/UTC"
        assert "StartWindowMinutes" not in api

    def test_rule_windows(self):
        rule = PlanRule("w", "cron(0 5 ? * SUN *)", "vault-a", 90, 60, 180)
        api = rule.to_api()
        assert api["StartWindowMinutes"] == 60
        assert api["CompletionWindowMinutes"] == 180

    def test_inert_plan(self):
        """규칙이 없는 플랜은 비활성"""
        assert BackupPlan("empty").is_inert
        assert not BackupPlan("p", [PlanRule("r", "cron(0 3 * * ? *)", "vault-a", 1)]).is_inert

    def test_vault_names_unique_in_order(self):
        plan = BackupPlan(
            "p",
            [
                PlanRule("r1", "cron(0 3 * * ? *)", "vault-b", 1),
                PlanRule("r2", "cron(0 4 * * ? *)", "vault-a", 1),
                PlanRule("r3", "cron(0 5 * * ? *)", "vault-b", 1),
            ],
        )
        assert plan.vault_names == ["vault-b", "vault-a"]


class TestSelectionModels:
    """Selection 모델 테스트"""

    def test_matches_all_conditions(self):
        """조건은 AND로 결합"""
        rule = SelectionRule(
            "sel-1",
            "daily",
            "arn:aws:iam::123456789012:role/r",
            (TagCondition("backup", "daily"), TagCondition("env", "prod")),
        )
        assert rule.matches({"backup": "daily", "env": "prod", "team": "x"})
        assert not rule.matches({"backup": "daily"})

    def test_signature_ignores_condition_order(self):
        a = SelectionRule("s", "p", "r", (TagCondition("a", "1"), TagCondition("b", "2")))
        b = SelectionRule("s", "p", "r", (TagCondition("b", "2"), TagCondition("a", "1")))
        assert a.signature() == b.signature()

    def test_to_api(self):
        rule = SelectionRule("s", "p", "role", (TagCondition("backup", "daily"),))
        assert rule.to_api()["ListOfTags"] == [
            {"ConditionType": "STRINGEQUALS", "ConditionKey": "backup", "ConditionValue": "daily"}
        ]


class TestResultModels:
    """결과 타입 테스트"""

    def test_change_actions(self):
        assert ChangeAction.CREATED.is_change
        assert ChangeAction.APPLIED.is_change
        assert not ChangeAction.UNCHANGED.is_change
        assert not ChangeAction.PENDING.is_change
        assert not ChangeAction.INERT.is_change

    def test_drift_report(self):
        in_sync = DriftReport("vault-a", "h", "h", remote_present=True)
        missing = DriftReport("vault-a", "h", None, remote_present=False)

        assert not in_sync.has_drift
        assert not in_sync.ledger_stale
        assert missing.has_drift
        assert missing.ledger_stale
