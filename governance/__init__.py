"""
governance - 백업 거버넌스 조정 로직

선언된 백업 거버넌스 모델(Vault / 보호 정책 / Plan / Selection)을
AWS Backup의 실제 상태와 일치시킵니다.

아키텍처:
    governance/
    ├── vault_registry.py  # Vault 생성/조회
    ├── protection.py      # Vault 보호 정책 집행 (해시 가드)
    ├── state.py           # 적용 해시 원장 (filelock)
    ├── catalog.py         # Backup Plan 정의
    ├── schedule.py        # AWS cron 검증 / 다음 실행 시각
    ├── selection.py       # 태그 기반 Selection 바인딩
    ├── model.py           # YAML 모델 로더
    └── reconciler.py      # 위상 정렬 조정 드라이버
"""

from .catalog import PolicyCatalog
from .model import GovernanceModel, load_model
from .models import BackupPlan, ChangeAction, ProtectionOutcome, SelectionRule, VaultHandle
from .protection import VaultProtectionEnforcer, build_document
from .reconciler import Reconciler, ReconcileReport, StepResult
from .selection import SelectionBinder
from .state import AppliedHashLedger
from .vault_registry import VaultRegistry

__all__: list[str] = [
    "AppliedHashLedger",
    "BackupPlan",
    "ChangeAction",
    "GovernanceModel",
    "PolicyCatalog",
    "ProtectionOutcome",
    "Reconciler",
    "ReconcileReport",
    "SelectionBinder",
    "SelectionRule",
    "StepResult",
    "VaultHandle",
    "VaultProtectionEnforcer",
    "VaultRegistry",
    "build_document",
    "load_model",
]
