"""
governance/catalog.py - Backup Plan 카탈로그

이름 있는 Backup Plan과 그 스케줄링 규칙(주기, 대상 Vault, 보존 기간)을 관리합니다.

    - 규칙 검증(cron, 보존 기간)은 외부 호출 전에 수행
    - 대상 Vault는 레지스트리에 먼저 존재해야 함
    - 규칙은 통째로 교체 (규칙 단위 부분 갱신 없음)
    - 규칙이 없는 플랜은 유효하지만 비활성 (AWS에 제출하지 않음).
      원격에 이미 있던 플랜은 Selection과 함께 삭제하여 더 이상 실행되지 않게 함
    - 같은 플랜 안의 스케줄 중복은 허용되며 각각 독립적으로 실행됨

Example:
    catalog = PolicyCatalog(backup, registry)
    plan = catalog.define_plan(
        "daily_two_weeks",
        [{"schedule": "0 3 * * ?", "vault": "vault-a", "retention_days": 14}],
    )
    print(plan.plan_id)
"""

from __future__ import annotations

import dataclasses
import logging
import re
import threading
import time
import uuid
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Union

from core.exceptions import (
    AlreadyExistsError,
    ExternalServiceError,
    InvalidRetentionError,
    PlanNotFoundError,
    ValidationError,
    is_not_found,
)
from core.retry import DEFAULT_RETRY_CONFIG, RetryConfig

from .api import invoke, paginate
from .models import BackupPlan, ChangeAction, PlanRule
from .schedule import normalize_schedule
from .vault_registry import VaultRegistry, validate_vault_name

logger = logging.getLogger(__name__)

# AWS Backup Plan/Rule 이름 규칙
PLAN_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\-_.]{1,50}$")

REQUIRED_PERMISSIONS = {
    "write": [
        "backup:CreateBackupPlan",
        "backup:UpdateBackupPlan",
        "backup:GetBackupPlan",
        "backup:ListBackupPlans",
        "backup:DeleteBackupPlan",
        "backup:ListBackupSelections",
        "backup:DeleteBackupSelection",
    ],
}

RuleInput = Union[PlanRule, Mapping[str, Any]]


def validate_resource_name(kind: str, name: Any) -> str:
    if not isinstance(name, str) or not PLAN_NAME_PATTERN.match(name):
        raise ValidationError(f"{kind}_name", name, "1~50자의 영문/숫자/'-'/'_'/'.'")
    return name


def _validate_retention(value: Any) -> int:
    # bool은 int의 하위 클래스이므로 명시적으로 제외
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidRetentionError(value)
    return value


def _optional_minutes(field: str, value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(field, value, "1 이상의 정수 (분)")
    return value


def _coerce_rule(plan_name: str, index: int, raw: RuleInput) -> PlanRule:
    """입력(PlanRule 또는 dict)을 검증된 PlanRule로 변환"""
    if isinstance(raw, PlanRule):
        values: dict[str, Any] = dataclasses.asdict(raw)
    elif isinstance(raw, Mapping):
        values = {
            "name": raw.get("name"),
            "schedule": raw.get("schedule"),
            "vault_name": raw.get("vault_name", raw.get("vault")),
            "retention_days": raw.get("retention_days", raw.get("retention")),
            "start_window_minutes": raw.get("start_window_minutes"),
            "completion_window_minutes": raw.get("completion_window_minutes"),
        }
    else:
        raise ValidationError(f"rules[{index}]", raw, "PlanRule 또는 dict")

    name = values.get("name") or f"{plan_name}_{index}"
    return PlanRule(
        name=validate_resource_name("rule", name),
        schedule=normalize_schedule(values.get("schedule")),  # type: ignore[arg-type]
        vault_name=validate_vault_name(values.get("vault_name")),  # type: ignore[arg-type]
        retention_days=_validate_retention(values.get("retention_days")),
        start_window_minutes=_optional_minutes("start_window_minutes", values.get("start_window_minutes")),
        completion_window_minutes=_optional_minutes(
            "completion_window_minutes", values.get("completion_window_minutes")
        ),
    )


def validate_rules(plan_name: str, rules: Iterable[RuleInput]) -> list[PlanRule]:
    """플랜 규칙 전체 검증 (외부 호출 없음)

    Raises:
        InvalidScheduleError: cron 문법 오류
        InvalidRetentionError: 보존 기간 0 이하
        ValidationError: 이름 중복 등 구조 오류
    """
    validate_resource_name("plan", plan_name)
    validated = [_coerce_rule(plan_name, i, raw) for i, raw in enumerate(rules)]

    seen: set[str] = set()
    for rule in validated:
        if rule.name in seen:
            raise ValidationError("rule_name", rule.name, f"플랜 '{plan_name}' 내 고유한 이름")
        seen.add(rule.name)
    return validated


def _rule_from_api(rule: dict[str, Any], declared: PlanRule | None) -> tuple[Any, ...]:
    """원격 규칙을 PlanRule.signature()와 비교 가능한 형태로 변환

    선언하지 않은 선택 항목(시작/완료 허용 시간)은 AWS 기본값이 채워지므로 비교에서 제외합니다.
    """
    start = rule.get("StartWindowMinutes") if declared and declared.start_window_minutes is not None else None
    completion = (
        rule.get("CompletionWindowMinutes") if declared and declared.completion_window_minutes is not None else None
    )
    return (
        rule.get("RuleName"),
        rule.get("TargetBackupVaultName"),
        rule.get("ScheduleExpression"),
        (rule.get("Lifecycle") or {}).get("DeleteAfterDays"),
        start,
        completion,
    )


def _plan_rule_from_api(rule: dict[str, Any]) -> PlanRule:
    """원격 규칙을 PlanRule로 변환 (검증 없음)"""
    return PlanRule(
        name=rule.get("RuleName", ""),
        schedule=rule.get("ScheduleExpression", ""),
        vault_name=rule.get("TargetBackupVaultName", ""),
        retention_days=(rule.get("Lifecycle") or {}).get("DeleteAfterDays", 0),
        start_window_minutes=rule.get("StartWindowMinutes"),
        completion_window_minutes=rule.get("CompletionWindowMinutes"),
    )


class PolicyCatalog:
    """Backup Plan 카탈로그"""

    def __init__(
        self,
        client: Any,
        registry: VaultRegistry,
        retry_config: RetryConfig = DEFAULT_RETRY_CONFIG,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.registry = registry
        self.retry_config = retry_config
        self._sleep = sleep
        self._plans: dict[str, BackupPlan] = {}
        self._remote_rules: dict[str, list[dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def _invoke(self, call: Callable[[], Any], operation: str, name: str) -> Any:
        return invoke(call, operation, f"plan/{name}", self.retry_config, self._sleep)

    def _remember(self, plan: BackupPlan, remote_rules: list[dict[str, Any]] | None = None) -> BackupPlan:
        with self._lock:
            self._plans[plan.name] = plan
            if remote_rules is None:
                self._remote_rules.pop(plan.name, None)
            else:
                self._remote_rules[plan.name] = remote_rules
        return plan

    # -------------------------------------------------------------------------
    # 조회
    # -------------------------------------------------------------------------

    def find(self, name: str) -> BackupPlan | None:
        """이름으로 플랜 조회 (없으면 None)

        규칙이 없는 비활성 플랜은 AWS에 없으므로 로컬 기록에서 찾습니다.
        """
        with self._lock:
            cached = self._plans.get(name)
        if cached is not None:
            return cached

        summaries = self._invoke(
            lambda: paginate(self.client, "list_backup_plans", "BackupPlansList"),
            "list_backup_plans",
            name,
        )
        for summary in summaries:
            if summary.get("BackupPlanName") == name:
                return self._fetch(name, summary["BackupPlanId"])
        return None

    def _fetch(self, name: str, plan_id: str) -> BackupPlan:
        response = self._invoke(
            lambda: self.client.get_backup_plan(BackupPlanId=plan_id),
            "get_backup_plan",
            name,
        )
        remote_rules = (response.get("BackupPlan") or {}).get("Rules", [])
        plan = BackupPlan(
            name=name,
            rules=[_plan_rule_from_api(r) for r in remote_rules],
            plan_id=response.get("BackupPlanId", plan_id),
            arn=response.get("BackupPlanArn"),
            version_id=response.get("VersionId"),
        )
        return self._remember(plan, remote_rules)

    def resolve(self, name: str, required_by: str | None = None) -> BackupPlan:
        """플랜 조회

        Raises:
            PlanNotFoundError: 플랜이 아직 없음 (DependencyNotReadyError)
        """
        plan = self.find(name)
        if plan is None:
            raise PlanNotFoundError(name, required_by)
        return plan

    # -------------------------------------------------------------------------
    # 정의 / 갱신
    # -------------------------------------------------------------------------

    def _check_vaults(self, name: str, rules: list[PlanRule]) -> None:
        for vault_name in dict.fromkeys(r.vault_name for r in rules):
            self.registry.resolve(vault_name, required_by=f"plan/{name}")

    def _is_same(self, existing: BackupPlan, rules: list[PlanRule]) -> bool:
        with self._lock:
            remote = self._remote_rules.get(existing.name)
        if remote is None:
            return sorted(r.signature() for r in existing.rules) == sorted(r.signature() for r in rules)
        declared = {r.name: r for r in rules}
        remote_sigs = sorted(_rule_from_api(r, declared.get(r.get("RuleName"))) for r in remote)
        return remote_sigs == sorted(r.signature() for r in rules)

    def _create(self, name: str, rules: list[PlanRule]) -> BackupPlan:
        plan = BackupPlan(name=name, rules=rules)
        request_id = str(uuid.uuid4())
        try:
            response = self._invoke(
                lambda: self.client.create_backup_plan(BackupPlan=plan.to_api(), CreatorRequestId=request_id),
                "create_backup_plan",
                name,
            )
        except ExternalServiceError as e:
            if e.error_code == "AlreadyExistsException":
                raise AlreadyExistsError("plan", name, cause=e.cause) from e
            raise
        plan.plan_id = response["BackupPlanId"]
        plan.arn = response.get("BackupPlanArn")
        plan.version_id = response.get("VersionId")
        logger.info(f"Backup Plan 생성: {name} ({plan.plan_id})")
        return self._remember(plan)

    def _update(self, existing: BackupPlan, rules: list[PlanRule]) -> BackupPlan:
        plan = BackupPlan(name=existing.name, rules=rules, plan_id=existing.plan_id, arn=existing.arn)
        response = self._invoke(
            lambda: self.client.update_backup_plan(BackupPlanId=existing.plan_id, BackupPlan=plan.to_api()),
            "update_backup_plan",
            existing.name,
        )
        plan.arn = response.get("BackupPlanArn", plan.arn)
        plan.version_id = response.get("VersionId")
        logger.info(f"Backup Plan 갱신: {plan.name} (버전 {plan.version_id})")
        return self._remember(plan)

    def _delete_quietly(self, call: Callable[[], Any], operation: str, name: str) -> None:
        try:
            self._invoke(call, operation, name)
        except ExternalServiceError as e:
            if not is_not_found(e):
                raise
            logger.debug(f"{operation}: 이미 삭제됨 ({name})")

    def _retire(self, existing: BackupPlan) -> None:
        """원격 플랜을 Selection과 함께 삭제

        AWS는 빈 규칙 목록을 거부하므로 규칙이 0개가 된 플랜은 삭제로만 멈출 수 있습니다.
        Selection이 남아 있으면 플랜 삭제가 거부되므로 먼저 지웁니다.
        """
        plan_id = existing.plan_id
        selections = self._invoke(
            lambda: paginate(self.client, "list_backup_selections", "BackupSelectionsList", BackupPlanId=plan_id),
            "list_backup_selections",
            existing.name,
        )
        for summary in selections:
            selection_id = summary["SelectionId"]
            self._delete_quietly(
                lambda: self.client.delete_backup_selection(BackupPlanId=plan_id, SelectionId=selection_id),
                "delete_backup_selection",
                existing.name,
            )
        self._delete_quietly(
            lambda: self.client.delete_backup_plan(BackupPlanId=plan_id),
            "delete_backup_plan",
            existing.name,
        )
        logger.info(f"규칙이 없어진 Backup Plan 삭제: {existing.name} ({plan_id}, Selection {len(selections)}개)")

    def _make_inert(self, name: str, existing: BackupPlan | None) -> BackupPlan:
        if existing is not None and existing.plan_id is not None:
            self._retire(existing)
        else:
            logger.info(f"규칙 없는 Backup Plan (비활성): {name}")
        return self._remember(BackupPlan(name=name))

    def preview(self, name: str, rules: Iterable[RuleInput]) -> ChangeAction:
        """외부 변경 없이 define_plan의 예상 결과 계산"""
        validated = validate_rules(name, rules)
        if not validated:
            return ChangeAction.INERT
        existing = self.find(name)
        if existing is None or existing.plan_id is None:
            return ChangeAction.CREATED
        return ChangeAction.UNCHANGED if self._is_same(existing, validated) else ChangeAction.UPDATED

    def sync_plan(self, name: str, rules: Iterable[RuleInput]) -> tuple[BackupPlan, ChangeAction]:
        """플랜 정의 - 처리 결과 포함

        같은 이름의 플랜이 있으면 규칙을 통째로 교체하고, 내용이 같으면 제출하지 않습니다.
        """
        validated = validate_rules(name, rules)

        if not validated:
            return self._make_inert(name, self.find(name)), ChangeAction.INERT

        self._check_vaults(name, validated)

        existing = self.find(name)
        if existing is None or existing.plan_id is None:
            try:
                return self._create(name, validated), ChangeAction.CREATED
            except AlreadyExistsError:
                logger.debug(f"Backup Plan 동시 생성 감지, 갱신으로 전환: {name}")
                with self._lock:
                    self._plans.pop(name, None)
                    self._remote_rules.pop(name, None)
                existing = self.resolve(name)

        if self._is_same(existing, validated):
            plan = self._remember(
                BackupPlan(
                    name=name,
                    rules=validated,
                    plan_id=existing.plan_id,
                    arn=existing.arn,
                    version_id=existing.version_id,
                )
            )
            return plan, ChangeAction.UNCHANGED

        return self._update(existing, validated), ChangeAction.UPDATED

    def define_plan(self, name: str, rules: Iterable[RuleInput]) -> BackupPlan:
        """플랜 정의 (생성 또는 전체 규칙 교체)

        Raises:
            InvalidScheduleError / InvalidRetentionError: 외부 호출 전 검증 실패
            VaultNotFoundError: 대상 Vault 없음
        """
        plan, _ = self.sync_plan(name, rules)
        return plan

    def update_plan(self, name: str, rules: Iterable[RuleInput]) -> BackupPlan:
        """기존 플랜의 규칙 전체를 재검증 후 다시 제출

        Raises:
            PlanNotFoundError: 플랜 없음
        """
        validated = validate_rules(name, rules)
        existing = self.resolve(name)
        if not validated:
            return self._make_inert(name, existing)
        self._check_vaults(name, validated)
        if existing.plan_id is None:
            return self._create(name, validated)
        return self._update(existing, validated)
