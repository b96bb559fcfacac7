"""
tests/governance/test_selection.py - governance/selection.py 테스트
"""

import pytest

from core.exceptions import (
    DependencyNotReadyError,
    GovernanceError,
    InvalidPredicateError,
    ValidationError,
)
from governance.models import BackupPlan, ChangeAction, PlanRule, TagCondition
from governance.selection import parse_condition, parse_predicate

DAILY = [{"schedule": "0 3 * * ?", "vault": "vault-a", "retention_days": 14}]
WEEKLY = [{"schedule": "cron(0 5 ? * SUN *)", "vault": "vault-a", "retention_days": 90}]
PREDICATE = [{"key": "backup_policy", "op": "EQUALS", "value": "daily_two_weeks"}]
ROLE_ARN = "arn:aws:iam::123456789012:role/r1"


def _existing_selection(backup_client, value):
    """원격에 sel-1이 이미 바인딩된 상태"""
    backup_client.pages["list_backup_selections"] = [
        {"BackupSelectionsList": [{"SelectionName": "sel-1", "SelectionId": "sel-old", "IamRoleArn": ROLE_ARN}]}
    ]
    backup_client.get_backup_selection.return_value = {
        "BackupSelection": {
            "SelectionName": "sel-1",
            "IamRoleArn": ROLE_ARN,
            "ListOfTags": [{"ConditionType": "STRINGEQUALS", "ConditionKey": "backup_policy", "ConditionValue": value}],
        },
        "SelectionId": "sel-old",
    }


class TestPredicate:
    """조건 파싱 테스트"""

    @pytest.mark.parametrize(
        "raw",
        [
            {"key": "backup", "op": "EQUALS", "value": "yes"},
            {"key": "backup", "value": "yes"},
            ("backup", "StringEquals", "yes"),
            TagCondition("backup", "yes"),
        ],
    )
    def test_accepted_forms(self, raw):
        condition = parse_condition("sel", raw)
        assert (condition.key, condition.value) == ("backup", "yes")

    def test_empty_predicate(self):
        with pytest.raises(InvalidPredicateError):
            parse_predicate("sel", [])
        with pytest.raises(InvalidPredicateError):
            parse_predicate("sel", None)

    @pytest.mark.parametrize(
        "raw",
        [
            {"key": "backup", "op": "CONTAINS", "value": "yes"},
            {"key": "", "value": "yes"},
            {"key": "backup", "value": ["yes"]},
            {"key": "backup", "value": True},
            ("backup", "yes"),
        ],
    )
    def test_invalid_conditions(self, raw):
        with pytest.raises(InvalidPredicateError):
            parse_condition("sel", raw)


class TestBindSelection:
    """bind_selection / sync_selection 테스트"""

    def test_plan_missing(self, binder, backup_client):
        """플랜이 없으면 DependencyNotReadyError"""
        with pytest.raises(DependencyNotReadyError):
            binder.bind_selection("sel-1", "daily_two_weeks", "r1", PREDICATE)
        backup_client.create_backup_selection.assert_not_called()

    def test_unsubmitted_plan_object(self, binder):
        with pytest.raises(DependencyNotReadyError):
            binder.bind_selection(
                "sel-1", BackupPlan("p", [PlanRule("r", "cron(0 3 * * ? *)", "vault-a", 1)]), "r1", PREDICATE
            )

    def test_invalid_predicate_no_calls(self, binder, backup_client):
        with pytest.raises(InvalidPredicateError):
            binder.bind_selection("sel-1", "daily_two_weeks", "r1", [])
        assert backup_client.method_calls == []

    def test_invalid_role(self, binder):
        with pytest.raises(ValidationError):
            binder.bind_selection("sel-1", "daily_two_weeks", "bad role", PREDICATE)

    def test_create(self, catalog, binder, backup_client):
        """Role 이름은 계정 ARN으로 확장"""
        catalog.define_plan("daily_two_weeks", DAILY)

        rule, action = binder.sync_selection("sel-1", "daily_two_weeks", "r1", PREDICATE)

        assert action == ChangeAction.CREATED
        assert rule.selection_id == "sel-0001"
        assert rule.plan_id == "plan-0001"
        submitted = backup_client.create_backup_selection.call_args.kwargs
        assert submitted["BackupPlanId"] == "plan-0001"
        assert submitted["BackupSelection"]["IamRoleArn"] == ROLE_ARN
        assert submitted["BackupSelection"]["ListOfTags"] == [
            {"ConditionType": "STRINGEQUALS", "ConditionKey": "backup_policy", "ConditionValue": "daily_two_weeks"}
        ]

    def test_unchanged(self, catalog, binder, backup_client):
        catalog.define_plan("daily_two_weeks", DAILY)
        _existing_selection(backup_client, "daily_two_weeks")

        rule, action = binder.sync_selection("sel-1", "daily_two_weeks", "r1", PREDICATE)

        assert action == ChangeAction.UNCHANGED
        assert rule.selection_id == "sel-old"
        backup_client.create_backup_selection.assert_not_called()
        backup_client.delete_backup_selection.assert_not_called()

    def test_replaced(self, catalog, binder, backup_client):
        """Selection은 수정 API가 없으므로 새로 만든 뒤 이전 것을 삭제"""
        catalog.define_plan("daily_two_weeks", DAILY)
        _existing_selection(backup_client, "something_else")

        rule, action = binder.sync_selection("sel-1", "daily_two_weeks", "r1", PREDICATE)

        assert action == ChangeAction.REPLACED
        assert rule.selection_id == "sel-0001"
        assert backup_client.delete_backup_selection.call_args.kwargs == {
            "BackupPlanId": "plan-0001",
            "SelectionId": "sel-old",
        }

    def test_replace_creates_before_delete(self, catalog, binder, backup_client):
        catalog.define_plan("daily_two_weeks", DAILY)
        _existing_selection(backup_client, "something_else")

        binder.sync_selection("sel-1", "daily_two_weeks", "r1", PREDICATE)

        names = [c[0] for c in backup_client.method_calls if c[0].endswith("_backup_selection")]
        assert names.index("create_backup_selection") < names.index("delete_backup_selection")

    def test_failed_replace_keeps_old_selection(self, catalog, binder, backup_client, client_error):
        """새 Selection 생성이 실패하면 이전 Selection은 삭제하지 않음"""
        catalog.define_plan("daily_two_weeks", DAILY)
        _existing_selection(backup_client, "something_else")
        backup_client.create_backup_selection.side_effect = client_error("AccessDeniedException")

        with pytest.raises(GovernanceError):
            binder.sync_selection("sel-1", "daily_two_weeks", "r1", PREDICATE)

        backup_client.delete_backup_selection.assert_not_called()

    def test_leftover_duplicate_removed(self, catalog, binder, backup_client):
        """중단된 교체로 남은 같은 이름의 이전 Selection 정리"""
        catalog.define_plan("daily_two_weeks", DAILY)
        backup_client.pages["list_backup_selections"] = [
            {
                "BackupSelectionsList": [
                    {"SelectionName": "sel-1", "SelectionId": "sel-new"},
                    {"SelectionName": "sel-1", "SelectionId": "sel-old"},
                ]
            }
        ]

        def _get(BackupPlanId, SelectionId):
            value = "daily_two_weeks" if SelectionId == "sel-new" else "stale"
            return {
                "BackupSelection": {
                    "SelectionName": "sel-1",
                    "IamRoleArn": ROLE_ARN,
                    "ListOfTags": [
                        {"ConditionType": "STRINGEQUALS", "ConditionKey": "backup_policy", "ConditionValue": value}
                    ],
                },
                "SelectionId": SelectionId,
            }

        backup_client.get_backup_selection.side_effect = _get

        rule, action = binder.sync_selection("sel-1", "daily_two_weeks", "r1", PREDICATE)

        assert action == ChangeAction.REPLACED
        assert rule.selection_id == "sel-new"
        backup_client.create_backup_selection.assert_not_called()
        backup_client.delete_backup_selection.assert_called_once_with(BackupPlanId="plan-0001", SelectionId="sel-old")

    def test_inert_plan(self, catalog, binder, backup_client):
        """비활성 플랜의 Selection은 선언만 기록"""
        catalog.define_plan("empty", [])

        _, action = binder.sync_selection("sel-1", "empty", "r1", PREDICATE)

        assert action == ChangeAction.INERT
        backup_client.create_backup_selection.assert_not_called()

    def test_role_rejected_by_service(self, catalog, binder, backup_client, client_error):
        catalog.define_plan("daily_two_weeks", DAILY)
        backup_client.create_backup_selection.side_effect = client_error(
            "InvalidParameterValueException", "IAM Role does not exist"
        )

        with pytest.raises(ValidationError):
            binder.bind_selection("sel-1", "daily_two_weeks", "r1", PREDICATE)


class TestPreview:
    """preview 테스트"""

    def test_preview_plan_not_yet_created(self, binder, backup_client):
        assert binder.preview("sel-1", "daily_two_weeks", "r1", PREDICATE) == ChangeAction.CREATED
        backup_client.create_backup_selection.assert_not_called()

    def test_preview_replaced(self, catalog, binder, backup_client):
        catalog.define_plan("daily_two_weeks", DAILY)
        _existing_selection(backup_client, "other")

        assert binder.preview("sel-1", "daily_two_weeks", "r1", PREDICATE) == ChangeAction.REPLACED


class TestPlansForResource:
    """plans_for_resource 테스트"""

    def test_overlapping_plans(self, catalog, binder):
        """여러 플랜에 매칭되는 리소스는 모두 보호"""
        catalog.define_plan("daily_two_weeks", DAILY)
        catalog.define_plan("weekly_quarter", WEEKLY)
        binder.bind_selection("sel-1", "daily_two_weeks", "r1", [{"key": "backup", "value": "yes"}])
        binder.bind_selection("sel-weekly", "weekly_quarter", "r1", [("backup", "EQUALS", "yes")])
        binder.bind_selection(
            "sel-prod", "weekly_quarter", "r1", [{"key": "backup", "value": "yes"}, {"key": "env", "value": "prod"}]
        )

        assert binder.plans_for_resource({"backup": "yes"}) == ["daily_two_weeks", "weekly_quarter"]
        assert binder.plans_for_resource({"backup": "no"}) == []
        assert len(binder.bound_selections()) == 3
