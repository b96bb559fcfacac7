"""
governance/selection.py - Backup Selection 바인더

태그 조건(predicate)으로 리소스를 Backup Plan에 묶습니다.
조건의 실제 평가는 스케줄 실행 시점에 AWS Backup이 수행하며,
바인더는 조건을 정확히 선언하고 구조 오류를 빠르게 실패시키는 역할만 합니다.

    - 빈 조건 / 알 수 없는 연산자: InvalidPredicateError (외부 호출 전)
    - 존재하지 않는 플랜: DependencyNotReadyError
    - 같은 이름의 Selection이 내용까지 같으면 재사용, 다르면 새로 만든 뒤 이전 것을 삭제
      (AWS Backup Selection은 수정 API가 없음. 생성이 실패해도 이전 Selection은 남음)

여러 플랜의 Selection에 동시에 매칭되는 리소스는 모든 플랜으로 각각 보호됩니다.

Example:
    binder = SelectionBinder(backup, catalog, context)
    rule = binder.bind_selection(
        "sel-1",
        plan="daily_two_weeks",
        execution_role="r1",
        predicate=[{"key": "backup_policy", "op": "EQUALS", "value": "daily_two_weeks"}],
    )
"""

from __future__ import annotations

import logging
import re
import threading
import time
import uuid
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Union

from core.aws.context import AwsContext
from core.exceptions import (
    DependencyNotReadyError,
    ExternalServiceError,
    InvalidPredicateError,
    ValidationError,
)
from core.retry import DEFAULT_RETRY_CONFIG, RetryConfig

from .api import invoke, paginate
from .catalog import PolicyCatalog, validate_resource_name
from .models import BackupPlan, ChangeAction, ConditionOperator, SelectionRule, TagCondition

logger = logging.getLogger(__name__)

ROLE_ARN_PATTERN = re.compile(r"^arn:aws[a-z\-]*:iam::\d{12}:role/[\w+=,.@\-/]+$")

# 입력 연산자 별칭 → ConditionOperator
OPERATOR_ALIASES = {
    "EQUALS": ConditionOperator.STRINGEQUALS,
    "STRINGEQUALS": ConditionOperator.STRINGEQUALS,
    "STRING_EQUALS": ConditionOperator.STRINGEQUALS,
}

REQUIRED_PERMISSIONS = {
    "write": [
        "backup:CreateBackupSelection",
        "backup:ListBackupSelections",
        "backup:GetBackupSelection",
        "backup:DeleteBackupSelection",
        "iam:PassRole",
    ],
}

ConditionInput = Union[TagCondition, Mapping[str, Any], tuple]


def parse_condition(selection: str, raw: ConditionInput) -> TagCondition:
    """조건 입력({key, op, value} dict, (key, op, value) 튜플, TagCondition)을 변환"""
    if isinstance(raw, TagCondition):
        return raw
    if isinstance(raw, Mapping):
        key, op, value = raw.get("key"), raw.get("op", "STRINGEQUALS"), raw.get("value")
    elif isinstance(raw, tuple) and len(raw) == 3:
        key, op, value = raw
    else:
        raise InvalidPredicateError(selection, f"조건 형식 오류: {raw!r}")

    operator = OPERATOR_ALIASES.get(str(op).upper())
    if operator is None:
        raise InvalidPredicateError(selection, f"지원하지 않는 연산자: {op!r}")
    if not isinstance(key, str) or not key:
        raise InvalidPredicateError(selection, f"조건 키가 비어 있음: {raw!r}")
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise InvalidPredicateError(selection, f"조건 값은 문자열이어야 함: {raw!r}")
    return TagCondition(key=key, value=str(value), op=operator)


def parse_predicate(selection: str, predicate: Iterable[ConditionInput] | None) -> tuple[TagCondition, ...]:
    """predicate 검증 (1개 이상의 조건, AND 결합)"""
    conditions = tuple(parse_condition(selection, c) for c in (predicate or ()))
    if not conditions:
        raise InvalidPredicateError(selection, "조건이 비어 있음")
    return conditions


def _plan_name(plan: str | BackupPlan) -> str:
    return plan.name if isinstance(plan, BackupPlan) else plan


def validate_selection(
    context: AwsContext,
    name: str,
    plan: str | BackupPlan,
    execution_role: str,
    predicate: Iterable[ConditionInput] | None,
) -> SelectionRule:
    """외부 호출 없이 Selection 선언 검증

    Role 이름은 context의 계정/파티션으로 ARN을 구성합니다.

    Raises:
        InvalidPredicateError: 빈 조건 또는 알 수 없는 연산자
        ValidationError: 이름 / Role 형식 오류
    """
    validate_resource_name("selection", name)
    conditions = parse_predicate(name, predicate)
    if not isinstance(execution_role, str) or not execution_role:
        raise ValidationError("execution_role", execution_role, "IAM Role 이름 또는 ARN")
    role_arn = context.role_arn(execution_role)
    if not ROLE_ARN_PATTERN.match(role_arn):
        raise ValidationError("execution_role", execution_role, "arn:<partition>:iam::<account>:role/<name>")
    return SelectionRule(name=name, plan_name=_plan_name(plan), role_arn=role_arn, predicate=conditions)


class SelectionBinder:
    """Backup Selection 바인더

    바인딩된 Selection은 인스턴스 단위로 기억하여 로컬 미리보기(plans_for_resource)에 사용합니다.
    """

    def __init__(
        self,
        client: Any,
        catalog: PolicyCatalog,
        context: AwsContext,
        retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.catalog = catalog
        self.context = context
        self.retry_config = retry_config
        self._sleep = sleep
        self._bound: dict[tuple[str, str], SelectionRule] = {}
        self._lock = threading.Lock()

    def _invoke(self, call: Callable[[], Any], operation: str, plan_name: str, name: str) -> Any:
        return invoke(call, operation, f"selection/{plan_name}/{name}", self.retry_config, self._sleep)

    def _remember(self, rule: SelectionRule) -> SelectionRule:
        with self._lock:
            self._bound[(rule.plan_name, rule.name)] = rule
        return rule

    # -------------------------------------------------------------------------
    # 검증
    # -------------------------------------------------------------------------

    def validate(
        self,
        name: str,
        plan: str | BackupPlan,
        execution_role: str,
        predicate: Iterable[ConditionInput] | None,
    ) -> SelectionRule:
        return validate_selection(self.context, name, plan, execution_role, predicate)

    # -------------------------------------------------------------------------
    # 조회
    # -------------------------------------------------------------------------

    def find_all(self, plan: BackupPlan, name: str) -> list[SelectionRule]:
        """플랜에 바인딩된 같은 이름의 Selection 전체

        교체 도중 중단되면 같은 이름이 둘 이상 남을 수 있습니다.
        """
        summaries = self._invoke(
            lambda: paginate(self.client, "list_backup_selections", "BackupSelectionsList", BackupPlanId=plan.plan_id),
            "list_backup_selections",
            plan.name,
            name,
        )
        return [self._fetch(plan, name, s) for s in summaries if s.get("SelectionName") == name]

    def _fetch(self, plan: BackupPlan, name: str, summary: dict[str, Any]) -> SelectionRule:
        selection_id = summary["SelectionId"]
        response = self._invoke(
            lambda: self.client.get_backup_selection(BackupPlanId=plan.plan_id, SelectionId=selection_id),
            "get_backup_selection",
            plan.name,
            name,
        )
        body = response.get("BackupSelection") or {}
        conditions = tuple(
            TagCondition(
                key=c.get("ConditionKey", ""),
                value=c.get("ConditionValue", ""),
                op=OPERATOR_ALIASES.get(str(c.get("ConditionType", "")).upper(), ConditionOperator.STRINGEQUALS),
            )
            for c in body.get("ListOfTags") or []
        )
        return SelectionRule(
            name=name,
            plan_name=plan.name,
            role_arn=body.get("IamRoleArn", summary.get("IamRoleArn", "")),
            predicate=conditions,
            selection_id=selection_id,
            plan_id=plan.plan_id,
        )

    def _resolve_plan(self, plan: str | BackupPlan, required_by: str) -> BackupPlan:
        if isinstance(plan, BackupPlan):
            if plan.plan_id is None and not plan.is_inert:
                raise DependencyNotReadyError("plan", plan.name, required_by)
            return plan
        return self.catalog.resolve(plan, required_by=required_by)

    # -------------------------------------------------------------------------
    # 바인딩
    # -------------------------------------------------------------------------

    def _create(self, plan: BackupPlan, rule: SelectionRule) -> SelectionRule:
        request_id = str(uuid.uuid4())
        try:
            response = self._invoke(
                lambda: self.client.create_backup_selection(
                    BackupPlanId=plan.plan_id,
                    BackupSelection=rule.to_api(),
                    CreatorRequestId=request_id,
                ),
                "create_backup_selection",
                plan.name,
                rule.name,
            )
        except ExternalServiceError as e:
            if e.error_code == "InvalidParameterValueException" and "role" in (e.error_message or "").lower():
                raise ValidationError("execution_role", rule.role_arn, "존재하는 IAM Role", cause=e) from e
            raise
        rule.selection_id = response["SelectionId"]
        rule.plan_id = plan.plan_id
        logger.info(f"Backup Selection 생성: {plan.name}/{rule.name} ({rule.selection_id})")
        return rule

    def _delete(self, plan: BackupPlan, existing: SelectionRule) -> None:
        self._invoke(
            lambda: self.client.delete_backup_selection(
                BackupPlanId=plan.plan_id,
                SelectionId=existing.selection_id,
            ),
            "delete_backup_selection",
            plan.name,
            existing.name,
        )
        logger.info(f"이전 Backup Selection 삭제: {plan.name}/{existing.name} ({existing.selection_id})")

    def preview(
        self,
        name: str,
        plan: str | BackupPlan,
        execution_role: str,
        predicate: Iterable[ConditionInput] | None,
    ) -> ChangeAction:
        """외부 변경 없이 bind_selection의 예상 결과 계산

        플랜이 아직 없으면 같은 패스에서 먼저 생성될 것이므로 CREATED로 봅니다.
        """
        rule = self.validate(name, plan, execution_role, predicate)
        target = plan if isinstance(plan, BackupPlan) else self.catalog.find(plan)
        if target is None or target.plan_id is None:
            return ChangeAction.INERT if target is not None and target.is_inert else ChangeAction.CREATED
        existing = self.find_all(target, name)
        if not existing:
            return ChangeAction.CREATED
        if len(existing) == 1 and existing[0].signature() == rule.signature():
            return ChangeAction.UNCHANGED
        return ChangeAction.REPLACED

    def sync_selection(
        self,
        name: str,
        plan: str | BackupPlan,
        execution_role: str,
        predicate: Iterable[ConditionInput] | None,
    ) -> tuple[SelectionRule, ChangeAction]:
        """Selection 바인딩 - 처리 결과 포함"""
        rule = self.validate(name, plan, execution_role, predicate)
        target = self._resolve_plan(plan, required_by=f"selection/{name}")

        if target.plan_id is None:
            # 비활성 플랜은 AWS에 없으므로 선언만 기록
            logger.info(f"비활성 플랜에 Selection 선언: {target.name}/{name}")
            return self._remember(rule), ChangeAction.INERT

        existing = self.find_all(target, name)
        current = next((s for s in existing if s.signature() == rule.signature()), None)
        if current is None:
            # 이전 Selection은 새 Selection 생성이 확인된 뒤에만 삭제
            current = self._create(target, rule)
        stale = [s for s in existing if s.selection_id != current.selection_id]
        for old in stale:
            self._delete(target, old)

        if not existing:
            action = ChangeAction.CREATED
        elif stale:
            action = ChangeAction.REPLACED
        else:
            logger.debug(f"Backup Selection 변경 없음: {target.name}/{name}")
            action = ChangeAction.UNCHANGED
        return self._remember(current), action

    def bind_selection(
        self,
        name: str,
        plan: str | BackupPlan,
        execution_role: str,
        predicate: Iterable[ConditionInput] | None,
    ) -> SelectionRule:
        """Selection 바인딩

        Args:
            name: Selection 이름 (플랜 내 고유)
            plan: 플랜 이름 또는 BackupPlan
            execution_role: IAM Role 이름 또는 ARN
            predicate: {key, op, value} 조건 목록 (AND)

        Raises:
            InvalidPredicateError: 조건 구조 오류
            DependencyNotReadyError: 플랜 없음
        """
        rule, _ = self.sync_selection(name, plan, execution_role, predicate)
        return rule

    # -------------------------------------------------------------------------
    # 로컬 평가
    # -------------------------------------------------------------------------

    def bound_selections(self) -> list[SelectionRule]:
        with self._lock:
            return list(self._bound.values())

    def plans_for_resource(self, tags: Mapping[str, str]) -> list[str]:
        """태그가 매칭되는 모든 플랜 이름 (중복 보호 허용, 선언 순서 유지)"""
        plans: list[str] = []
        for rule in self.bound_selections():
            if rule.matches(dict(tags)) and rule.plan_name not in plans:
                plans.append(rule.plan_name)
        return plans
