"""governance/model.py - 선언형 거버넌스 모델 로더.

YAML 설정 파일을 로드하여 Vault / Plan / Selection 선언(GovernanceModel)으로 변환합니다.

설정 파일 선택 우선순위:
    1. 함수 파라미터 (path).
    2. 환경변수 (BGOV_CONFIG).
    3. 기본값 (./governance.yaml).

형식:
    account_id: "123456789012"      # 선택 (없으면 STS로 확인)
    region: ap-northeast-2          # 선택
    protection:
      extra_denied_actions: []      # 필수 거부 액션 뒤에 추가
    vaults:
      - name: vault-a
        tags: {team: platform}
    plans:
      - name: daily_two_weeks
        rules:
          - {schedule: "0 3 * * ?", vault: vault-a, retention_days: 14}
    selections:
      - name: sel-1
        plan: daily_two_weeks
        role: r1
        predicate:
          - {key: backup_policy, op: EQUALS, value: daily_two_weeks}

구조 오류(필수 키 누락, 타입 불일치, 이름 중복)는 ConfigError로 보고하며,
값 검증(cron, 보존 기간, 조건 연산자)은 각 컴포넌트의 validate 단계에서 수행합니다.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from core.exceptions import ConfigError

# 환경변수 키
ENV_CONFIG = "BGOV_CONFIG"

DEFAULT_CONFIG_FILE = "governance.yaml"


@dataclass
class VaultSpec:
    name: str
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class PlanSpec:
    name: str
    rules: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class SelectionSpec:
    name: str
    plan: str
    role: str
    predicate: list[Any] = field(default_factory=list)


@dataclass
class GovernanceModel:
    """선언된 백업 거버넌스 모델

    Attributes:
        account_id: 대상 계정 ID (None이면 실행 시 STS로 확인)
        region: 대상 리전 (None이면 설정 기본값)
        vaults: Vault 선언
        plans: Backup Plan 선언
        selections: Selection 선언
        extra_denied_actions: 보호 정책에 추가할 거부 액션
        source: 로드한 파일 경로
    """

    account_id: str | None = None
    region: str | None = None
    vaults: list[VaultSpec] = field(default_factory=list)
    plans: list[PlanSpec] = field(default_factory=list)
    selections: list[SelectionSpec] = field(default_factory=list)
    extra_denied_actions: list[str] = field(default_factory=list)
    source: str | None = None

    def vault_names(self) -> list[str]:
        return [v.name for v in self.vaults]

    def plan_names(self) -> list[str]:
        return [p.name for p in self.plans]


def resolve_config_path(path: str | Path | None = None) -> Path:
    """설정 파일 경로 결정 (우선순위 적용)"""
    if path:
        return Path(path)
    return Path(os.environ.get(ENV_CONFIG) or DEFAULT_CONFIG_FILE)


def _require_list(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise ConfigError(key, f"목록이어야 합니다 (현재: {type(value).__name__})")
    return value


def _require_mapping(value: Any, key: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(key, f"매핑이어야 합니다 (현재: {type(value).__name__})")
    return value


def _require_str(entry: dict[str, Any], key: str, where: str) -> str:
    value = entry.get(key)
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{where}.{key}", "필수 문자열 값이 없습니다")
    return value


def _check_unique(kind: str, names: list[str]) -> None:
    seen: set[str] = set()
    for name in names:
        if name in seen:
            raise ConfigError(kind, f"이름 중복: {name}")
        seen.add(name)


def _parse_vault(index: int, raw: Any) -> VaultSpec:
    if isinstance(raw, str):
        return VaultSpec(name=raw)
    entry = _require_mapping(raw, f"vaults[{index}]")
    tags = _require_mapping(entry.get("tags") or {}, f"vaults[{index}].tags")
    return VaultSpec(
        name=_require_str(entry, "name", f"vaults[{index}]"),
        tags={str(k): str(v) for k, v in tags.items()},
    )


def _parse_plan(index: int, raw: Any) -> PlanSpec:
    where = f"plans[{index}]"
    entry = _require_mapping(raw, where)
    rules = _require_list(entry, "rules")
    for i, rule in enumerate(rules):
        _require_mapping(rule, f"{where}.rules[{i}]")
    return PlanSpec(name=_require_str(entry, "name", where), rules=[dict(r) for r in rules])


def _parse_selection(index: int, raw: Any) -> SelectionSpec:
    where = f"selections[{index}]"
    entry = _require_mapping(raw, where)
    predicate = entry.get("predicate") or []
    if not isinstance(predicate, list):
        raise ConfigError(f"{where}.predicate", "목록이어야 합니다")
    return SelectionSpec(
        name=_require_str(entry, "name", where),
        plan=_require_str(entry, "plan", where),
        role=_require_str(entry, "role", where),
        predicate=predicate,
    )


def parse_model(data: Any, source: str | None = None) -> GovernanceModel:
    """YAML에서 읽은 딕셔너리를 GovernanceModel로 변환

    Raises:
        ConfigError: 구조 오류
    """
    if data is None:
        data = {}
    data = _require_mapping(data, "root")

    protection = _require_mapping(data.get("protection") or {}, "protection")
    extra_actions = protection.get("extra_denied_actions") or []
    if not isinstance(extra_actions, list) or not all(isinstance(a, str) for a in extra_actions):
        raise ConfigError("protection.extra_denied_actions", "문자열 목록이어야 합니다")

    account_id = data.get("account_id")
    model = GovernanceModel(
        account_id=str(account_id) if account_id is not None else None,
        region=data.get("region"),
        vaults=[_parse_vault(i, v) for i, v in enumerate(_require_list(data, "vaults"))],
        plans=[_parse_plan(i, p) for i, p in enumerate(_require_list(data, "plans"))],
        selections=[_parse_selection(i, s) for i, s in enumerate(_require_list(data, "selections"))],
        extra_denied_actions=list(extra_actions),
        source=source,
    )

    _check_unique("vaults", model.vault_names())
    _check_unique("plans", model.plan_names())
    _check_unique("selections", [f"{s.plan}/{s.name}" for s in model.selections])
    return model


def load_model(path: str | Path | None = None) -> GovernanceModel:
    """설정 파일 로드

    Args:
        path: YAML 파일 경로 (None이면 환경변수 → ./governance.yaml 순서)

    Returns:
        GovernanceModel

    Raises:
        ConfigError: 파일 없음, YAML 문법 오류, 구조 오류
    """
    config_file = resolve_config_path(path)
    if not config_file.exists():
        raise ConfigError("config", f"설정 파일이 없습니다: {config_file}")

    try:
        with config_file.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError("config", f"YAML 파싱 실패: {config_file}", cause=e) from e

    return parse_model(data, source=str(config_file))
