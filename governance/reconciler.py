"""
governance/reconciler.py - 조정(reconciliation) 드라이버

선언된 GovernanceModel을 외부 상태와 일치시키는 1회 패스를 실행합니다.

    1. 모든 Plan / Selection 선언을 외부 호출 없이 검증
    2. Vault → Protection → Plan → Selection 의존 그래프를 위상 정렬
    3. 순서대로 실행: Vault 보장 → 보호 정책 조정 → Plan 정의 → Selection 바인딩

치명적 오류는 실패한 엔티티와 함께 패스를 중단시키며,
이미 완료된 단계(예: Vault 생성)는 그대로 두어 다음 패스에서 이어서 진행할 수 있습니다.

Example:
    reconciler = Reconciler.from_session(session, context)
    report = reconciler.run(load_model("governance.yaml"))
    sys.exit(report.exit_code)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from graphlib import TopologicalSorter
from pathlib import Path
from typing import Any

from core.aws.client import get_client
from core.aws.context import AwsContext
from core.config import Settings, settings as default_settings
from core.exceptions import GovernanceError

from .catalog import PolicyCatalog, validate_rules
from .model import GovernanceModel, PlanSpec, SelectionSpec, VaultSpec
from .models import ChangeAction, ProtectionOutcome
from .protection import VaultProtectionEnforcer
from .selection import SelectionBinder, validate_selection
from .state import AppliedHashLedger
from .vault_registry import VaultRegistry, validate_vault_name

logger = logging.getLogger(__name__)

# 같은 단계에서 실행 가능한 노드의 정렬 순서
KIND_ORDER = {"vault": 0, "protection": 1, "plan": 2, "selection": 3}

_PROTECTION_ACTIONS = {
    ProtectionOutcome.UNCHANGED: ChangeAction.UNCHANGED,
    ProtectionOutcome.APPLIED: ChangeAction.APPLIED,
    ProtectionOutcome.PENDING: ChangeAction.PENDING,
}

Node = tuple[str, str]


@dataclass
class StepResult:
    """엔티티 단위 처리 결과"""

    kind: str
    name: str
    action: ChangeAction
    detail: str = ""
    error: GovernanceError | None = None

    @property
    def entity(self) -> str:
        return f"{self.kind}/{self.name}"


@dataclass
class ReconcileReport:
    """조정 패스 결과"""

    steps: list[StepResult] = field(default_factory=list)
    dry_run: bool = False

    @property
    def failed(self) -> StepResult | None:
        return next((s for s in self.steps if s.action == ChangeAction.FAILED), None)

    @property
    def aborted(self) -> bool:
        return self.failed is not None

    @property
    def pending(self) -> list[StepResult]:
        return [s for s in self.steps if s.action == ChangeAction.PENDING]

    @property
    def changed(self) -> list[StepResult]:
        return [s for s in self.steps if s.action.is_change]

    @property
    def exit_code(self) -> int:
        """0: 성공, 1: 치명적 오류로 중단, 2: 보호 대기 항목 있음 (다음 패스에서 재시도)"""
        if self.aborted:
            return 1
        if self.pending:
            return 2
        return 0


# =============================================================================
# 의존 그래프
# =============================================================================


def build_graph(model: GovernanceModel) -> dict[Node, set[Node]]:
    """엔티티 의존 그래프 생성 (노드 → 선행 노드 집합)

    모델에 선언되지 않은 Vault/Plan 참조는 이미 외부에 존재하는 것으로 보고 간선을 만들지 않습니다.
    """
    declared_vaults = set(model.vault_names())
    declared_plans = set(model.plan_names())
    graph: dict[Node, set[Node]] = {}

    for vault in model.vaults:
        graph[("vault", vault.name)] = set()
        graph[("protection", vault.name)] = {("vault", vault.name)}

    for plan in model.plans:
        targets = {r.get("vault_name", r.get("vault")) for r in plan.rules}
        graph[("plan", plan.name)] = {("vault", v) for v in targets if v in declared_vaults}

    for selection in model.selections:
        deps = {("plan", selection.plan)} if selection.plan in declared_plans else set()
        graph[("selection", f"{selection.plan}/{selection.name}")] = deps

    return graph


def execution_order(model: GovernanceModel) -> list[Node]:
    """위상 정렬된 실행 순서

    선언 순서와 무관하게 Vault → Protection → Plan → Selection 의존을 보장하며,
    같은 단계에서 실행 가능한 노드는 종류 순서 → 선언 순서로 정렬합니다.
    """
    graph = build_graph(model)
    position = {node: i for i, node in enumerate(graph)}
    sorter = TopologicalSorter(graph)
    sorter.prepare()

    order: list[Node] = []
    while sorter.is_active():
        ready = sorted(sorter.get_ready(), key=lambda n: (KIND_ORDER[n[0]], position.get(n, len(position))))
        order.extend(ready)
        sorter.done(*ready)
    return order


# =============================================================================
# 검증
# =============================================================================


def validate_model(model: GovernanceModel, context: AwsContext) -> list[StepResult]:
    """모델 전체를 외부 호출 없이 검증 (모든 오류 수집)"""
    failures: list[StepResult] = []

    def _check(kind: str, name: str, func: Callable[[], Any]) -> None:
        try:
            func()
        except GovernanceError as e:
            failures.append(StepResult(kind, name, ChangeAction.FAILED, detail=str(e), error=e))

    for vault in model.vaults:
        _check("vault", vault.name, lambda v=vault: validate_vault_name(v.name))
    for plan in model.plans:
        _check("plan", plan.name, lambda p=plan: validate_rules(p.name, p.rules))
    for sel in model.selections:
        _check(
            "selection",
            f"{sel.plan}/{sel.name}",
            lambda s=sel: validate_selection(context, s.name, s.plan, s.role, s.predicate),
        )
    return failures


# =============================================================================
# 드라이버
# =============================================================================


class Reconciler:
    """조정 드라이버"""

    def __init__(
        self,
        registry: VaultRegistry,
        enforcer: VaultProtectionEnforcer,
        catalog: PolicyCatalog,
        binder: SelectionBinder,
    ):
        self.registry = registry
        self.enforcer = enforcer
        self.catalog = catalog
        self.binder = binder

    @classmethod
    def from_session(
        cls,
        session: Any,
        context: AwsContext,
        config: Settings | None = None,
        extra_denied_actions: Iterable[str] = (),
        state_dir: str | Path | None = None,
    ) -> Reconciler:
        """boto3 Session으로부터 전체 컴포넌트 구성"""
        config = config or default_settings
        client = get_client(
            session,
            "backup",
            region_name=context.region,
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
        )
        retry_config = config.retry_config()
        ledger = AppliedHashLedger(context.account_id, context.region, state_dir or config.state_dir)
        registry = VaultRegistry(client, context, retry_config)
        enforcer = VaultProtectionEnforcer(client, registry, ledger, retry_config, extra_denied_actions)
        catalog = PolicyCatalog(client, registry, retry_config)
        binder = SelectionBinder(client, catalog, context, retry_config)
        return cls(registry, enforcer, catalog, binder)

    @property
    def context(self) -> AwsContext:
        return self.registry.context

    def validate(self, model: GovernanceModel) -> list[StepResult]:
        return validate_model(model, self.context)

    def _index(self, model: GovernanceModel) -> dict[Node, Any]:
        specs: dict[Node, Any] = {}
        for vault in model.vaults:
            specs[("vault", vault.name)] = vault
            specs[("protection", vault.name)] = vault
        for plan in model.plans:
            specs[("plan", plan.name)] = plan
        for sel in model.selections:
            specs[("selection", f"{sel.plan}/{sel.name}")] = sel
        return specs

    def _drifted(self, vault_name: str) -> bool:
        """원격 보호 정책이 의도한 문서와 다른지 확인"""
        report = self.enforcer.detect_drift(vault_name)
        if report.has_drift:
            missing = ", ".join(report.missing_actions) or "-"
            logger.warning(f"보호 정책 드리프트 감지, 다시 적용: {vault_name} (누락: {missing})")
        return report.has_drift

    def _apply_step(self, kind: str, spec: Any, force: bool, repair_drift: bool = False) -> tuple[ChangeAction, str]:
        if kind == "vault":
            vault: VaultSpec = spec
            handle, action = self.registry.sync_vault(vault.name, vault.tags)
            return action, handle.arn
        if kind == "protection":
            if not force and repair_drift:
                force = self._drifted(spec.name)
            result = self.enforcer.reconcile(spec.name, force=force)
            return _PROTECTION_ACTIONS[result.outcome], result.content_hash[:12]
        if kind == "plan":
            plan_spec: PlanSpec = spec
            plan, action = self.catalog.sync_plan(plan_spec.name, plan_spec.rules)
            return action, plan.plan_id or ""
        sel: SelectionSpec = spec
        rule, action = self.binder.sync_selection(sel.name, sel.plan, sel.role, sel.predicate)
        return action, rule.selection_id or ""

    def _preview_step(self, kind: str, spec: Any) -> ChangeAction:
        if kind == "vault":
            return ChangeAction.UNCHANGED if self.registry.find(spec.name) else ChangeAction.CREATED
        if kind == "protection":
            return self.enforcer.preview(spec.name)
        if kind == "plan":
            return self.catalog.preview(spec.name, spec.rules)
        return self.binder.preview(spec.name, spec.plan, spec.role, spec.predicate)

    def run(
        self,
        model: GovernanceModel,
        dry_run: bool = False,
        force: bool = False,
        repair_drift: bool = False,
    ) -> ReconcileReport:
        """조정 패스 1회 실행

        Args:
            model: 선언된 거버넌스 모델
            dry_run: True면 외부 변경 없이 예상 결과만 계산
            force: 원장 해시가 같아도 보호 정책을 다시 적용
            repair_drift: 원격 정책이 의도와 다른 Vault만 보호 정책을 다시 적용
                (Vault마다 get_backup_vault_access_policy 1회 추가 호출)

        Returns:
            ReconcileReport
        """
        report = ReconcileReport(dry_run=dry_run)

        failures = self.validate(model)
        if failures:
            logger.warning(f"모델 검증 실패: {len(failures)}건, 외부 호출 없이 중단")
            report.steps.extend(failures)
            return report

        specs = self._index(model)
        for kind, name in execution_order(model):
            spec = specs[(kind, name)]
            try:
                if dry_run:
                    action, detail = self._preview_step(kind, spec), ""
                else:
                    action, detail = self._apply_step(kind, spec, force, repair_drift)
            except GovernanceError as e:
                logger.error(f"조정 중단 [{kind}/{name}]: {e}")
                report.steps.append(StepResult(kind, name, ChangeAction.FAILED, detail=str(e), error=e))
                return report

            logger.debug(f"{kind}/{name}: {action.value} {detail}")
            report.steps.append(StepResult(kind, name, action, detail=detail))

        return report
