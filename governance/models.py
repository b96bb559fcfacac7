"""
governance/models.py - 백업 거버넌스 데이터 모델

Vault, 보호 정책 문서, Backup Plan, Selection 규칙과
조정(reconcile) 결과 타입을 정의합니다.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

# 보호 정책 스키마 버전 (IAM 정책 언어 버전)
POLICY_VERSION = "2012-10-17"

# 어떤 설정으로도 제거할 수 없는 필수 거부 액션 (순서 고정)
MANDATORY_DENY_ACTIONS: tuple[str, ...] = (
    "backup:DeleteRecoveryPoint",
    "backup:DeleteBackupVault",
    "backup:PutBackupVaultAccessPolicy",
    "backup:DeleteBackupVaultAccessPolicy",
)

PROTECTION_STATEMENT_SID = "DenyRecoveryPointAndVaultDeletion"

# 전체 주체 (wildcard)
WILDCARD_PRINCIPAL = "*"


class Effect(Enum):
    """정책 효과"""

    DENY = "Deny"
    ALLOW = "Allow"


class ConditionOperator(Enum):
    """태그 조건 비교 연산자 (현재 정확 일치만 지원)"""

    STRINGEQUALS = "STRINGEQUALS"


class ChangeAction(Enum):
    """조정 단계별 처리 결과"""

    CREATED = "created"
    UPDATED = "updated"
    REPLACED = "replaced"
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    PENDING = "pending"
    INERT = "inert"
    FAILED = "failed"

    @property
    def is_change(self) -> bool:
        return self in (
            ChangeAction.CREATED,
            ChangeAction.UPDATED,
            ChangeAction.REPLACED,
            ChangeAction.APPLIED,
        )


# =============================================================================
# Vault
# =============================================================================


@dataclass(frozen=True)
class VaultHandle:
    """Backup Vault 식별 정보

    Attributes:
        name: Vault 이름 (생성 후 불변)
        arn: AWS가 부여한 Vault ARN
        creation_date: 생성 시각
    """

    name: str
    arn: str
    creation_date: datetime | None = None

    @classmethod
    def from_api(cls, response: dict[str, Any], fallback_arn: str = "") -> VaultHandle:
        """create/describe_backup_vault 응답으로부터 생성"""
        return cls(
            name=response["BackupVaultName"],
            arn=response.get("BackupVaultArn") or fallback_arn,
            creation_date=response.get("CreationDate"),
        )


# =============================================================================
# 보호 정책 문서
# =============================================================================


@dataclass(frozen=True)
class PolicyStatement:
    """정책 문장"""

    sid: str
    effect: Effect
    principal: str
    actions: tuple[str, ...]
    resource: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "Sid": self.sid,
            "Effect": self.effect.value,
            "Principal": {"AWS": self.principal},
            "Action": list(self.actions),
            "Resource": self.resource,
        }


@dataclass(frozen=True)
class ProtectionPolicyDocument:
    """Vault 접근 제어 문서

    하나의 Vault에 묶이며, 조정 패스마다 다시 계산되고
    마지막으로 적용된 버전과 내용(해시)으로 비교됩니다.

    직렬화 형식은 재시작 후에도 해시 비교가 의미 있도록 바이트 단위로 고정됩니다:
    키 삽입 순서 유지, 공백 없는 구분자, UTF-8.
    """

    vault_name: str
    statements: tuple[PolicyStatement, ...]
    version: str = POLICY_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "Version": self.version,
            "Statement": [s.to_dict() for s in self.statements],
        }

    def canonical_json(self) -> str:
        """해시 비교 및 API 전송용 정규 직렬화"""
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @property
    def content_hash(self) -> str:
        """정규 직렬화의 SHA-256 해시"""
        return hashlib.sha256(self.canonical_json().encode("utf-8")).hexdigest()

    @property
    def denied_actions(self) -> set[str]:
        actions: set[str] = set()
        for statement in self.statements:
            if statement.effect == Effect.DENY and statement.principal == WILDCARD_PRINCIPAL:
                actions.update(statement.actions)
        return actions

    def missing_mandatory_actions(self) -> list[str]:
        """문서에서 누락된 필수 거부 액션 목록"""
        denied = self.denied_actions
        return [a for a in MANDATORY_DENY_ACTIONS if a not in denied]


# =============================================================================
# Backup Plan
# =============================================================================


@dataclass(frozen=True)
class PlanRule:
    """스케줄링 규칙

    Attributes:
        name: 규칙 이름 (플랜 내 고유)
        schedule: cron 표현식 (검증 후 ``cron(m h dom mon dow year)`` 형태로 정규화)
        vault_name: 대상 Vault 이름
        retention_days: 복구 지점 생성 시점 기준 보존 일수
        start_window_minutes: 시작 허용 시간 (선택)
        completion_window_minutes: 완료 허용 시간 (선택)
    """

    name: str
    schedule: str
    vault_name: str
    retention_days: int
    start_window_minutes: int | None = None
    completion_window_minutes: int | None = None

    def to_api(self) -> dict[str, Any]:
        """create/update_backup_plan Rules 항목으로 변환"""
        rule: dict[str, Any] = {
            "RuleName": self.name,
            "TargetBackupVaultName": self.vault_name,
            "ScheduleExpression": self.schedule,
            "ScheduleExpressionTimezone": "Etc/UTC",
            "Lifecycle": {"DeleteAfterDays": self.retention_days},
        }
        if self.start_window_minutes is not None:
            rule["StartWindowMinutes"] = self.start_window_minutes
        if self.completion_window_minutes is not None:
            rule["CompletionWindowMinutes"] = self.completion_window_minutes
        return rule

    def signature(self) -> tuple[Any, ...]:
        """원격 규칙과 비교하기 위한 값"""
        return (
            self.name,
            self.vault_name,
            self.schedule,
            self.retention_days,
            self.start_window_minutes,
            self.completion_window_minutes,
        )


@dataclass
class BackupPlan:
    """Backup Plan

    Attributes:
        name: 플랜 이름 (고유)
        rules: 규칙 목록 (통째로 교체되며 규칙 단위 diff는 하지 않음)
        plan_id: AWS BackupPlanId (규칙이 없는 비활성 플랜은 None)
        arn: BackupPlanArn
        version_id: 플랜 버전 ID
    """

    name: str
    rules: list[PlanRule] = field(default_factory=list)
    plan_id: str | None = None
    arn: str | None = None
    version_id: str | None = None

    @property
    def is_inert(self) -> bool:
        """규칙이 없는 플랜은 유효하지만 아무것도 실행하지 않음"""
        return not self.rules

    @property
    def vault_names(self) -> list[str]:
        names: list[str] = []
        for rule in self.rules:
            if rule.vault_name not in names:
                names.append(rule.vault_name)
        return names

    def to_api(self) -> dict[str, Any]:
        return {
            "BackupPlanName": self.name,
            "Rules": [r.to_api() for r in self.rules],
        }


# =============================================================================
# Selection
# =============================================================================


@dataclass(frozen=True)
class TagCondition:
    """태그 매칭 조건 (key, op, value)"""

    key: str
    value: str
    op: ConditionOperator = ConditionOperator.STRINGEQUALS

    def matches(self, tags: dict[str, str]) -> bool:
        return tags.get(self.key) == self.value

    def to_api(self) -> dict[str, str]:
        return {
            "ConditionType": self.op.value,
            "ConditionKey": self.key,
            "ConditionValue": self.value,
        }


@dataclass
class SelectionRule:
    """리소스 선택 규칙

    조건은 모두 AND로 결합됩니다. 실제 평가는 스케줄 실행 시점에 AWS Backup이 수행하며,
    matches()는 미리보기/검증용 로컬 평가입니다.
    """

    name: str
    plan_name: str
    role_arn: str
    predicate: tuple[TagCondition, ...]
    selection_id: str | None = None
    plan_id: str | None = None

    def matches(self, tags: dict[str, str]) -> bool:
        return all(c.matches(tags) for c in self.predicate)

    def signature(self) -> tuple[Any, ...]:
        return (
            self.name,
            self.role_arn,
            tuple(sorted((c.op.value, c.key, c.value) for c in self.predicate)),
        )

    def to_api(self) -> dict[str, Any]:
        return {
            "SelectionName": self.name,
            "IamRoleArn": self.role_arn,
            "ListOfTags": [c.to_api() for c in self.predicate],
        }


# =============================================================================
# 조정 결과
# =============================================================================


class ProtectionOutcome(Enum):
    """보호 정책 조정 결과"""

    UNCHANGED = "unchanged"  # 적용된 해시와 동일 - 외부 호출 없음
    APPLIED = "applied"  # 적용 확인 후 해시 기록
    PENDING = "pending"  # 결과 불명 - 다음 조정에서 다시 확인


@dataclass
class ProtectionResult:
    """보호 정책 조정 결과"""

    vault_name: str
    outcome: ProtectionOutcome
    content_hash: str
    attempts: int = 0
    message: str = ""


@dataclass
class DriftReport:
    """원격 보호 정책과 의도한 정책의 차이"""

    vault_name: str
    intended_hash: str
    applied_hash: str | None
    remote_present: bool
    missing_actions: list[str] = field(default_factory=list)
    resource_mismatch: bool = False

    @property
    def has_drift(self) -> bool:
        return not self.remote_present or bool(self.missing_actions) or self.resource_mismatch

    @property
    def ledger_stale(self) -> bool:
        """원장에 기록된 해시가 현재 의도한 문서와 다름"""
        return self.applied_hash != self.intended_hash
