"""
governance/state.py - 보호 정책 적용 해시 원장

Vault별로 마지막으로 적용이 확인된 보호 정책 문서의 해시를 JSON 파일로 저장한다.
해시는 외부 서비스가 적용을 확인한 뒤에만 기록되며, 적용 실패 시에는
"보호 대기(pending)" 상태만 남기고 기존 해시는 그대로 둔다.

저장 경로:
    ``{state_dir}/{account_id}_{region}.json``

동시성 보호:
    - 쓰기: ``filelock`` 라이브러리로 멀티 프로세스 환경에서 안전하게 보호
      (read-modify-write 전체를 락 안에서 수행)
    - 읽기: 락 없이 수행 (stale read 허용, 비교 결과가 틀리면 다음 조정에서 보정)

사용법:
    from governance.state import AppliedHashLedger

    ledger = AppliedHashLedger("123456789012", "ap-northeast-2")
    record = ledger.get("vault-a")
    ledger.record_applied("vault-a", document.content_hash)
"""

from __future__ import annotations

import json
import logging
import shutil
import tempfile
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from filelock import FileLock, Timeout

from core.cache import ledger_file

logger = logging.getLogger(__name__)

# 파일 락 타임아웃 (초)
FILE_LOCK_TIMEOUT = 10

STATE_VERSION = 1


@dataclass
class AppliedRecord:
    """Vault별 적용 기록

    Attributes:
        vault_name: Vault 이름
        applied_hash: 적용이 확인된 문서 해시 (한 번도 적용되지 않았으면 None)
        applied_at: 적용 확인 시각 (ISO 8601, UTC)
        pending_hash: 적용 대기 중인 문서 해시
        last_error: 마지막 적용 실패 사유
        failures: 연속 실패 횟수
    """

    vault_name: str
    applied_hash: str | None = None
    applied_at: str | None = None
    pending_hash: str | None = None
    last_error: str | None = None
    failures: int = 0

    @property
    def is_pending(self) -> bool:
        return self.pending_hash is not None


_RECORD_FIELDS = {f.name for f in fields(AppliedRecord)}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AppliedHashLedger:
    """적용 해시 원장

    Attributes:
        account_id: AWS 계정 ID
        region: AWS 리전
        path: 원장 JSON 파일 경로
    """

    def __init__(
        self,
        account_id: str,
        region: str,
        state_dir: str | Path | None = None,
        lock_timeout: float = FILE_LOCK_TIMEOUT,
    ):
        self.account_id = account_id
        self.region = region
        self.path = ledger_file(account_id, region, state_dir)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.lock_timeout = lock_timeout

    # -------------------------------------------------------------------------
    # 읽기
    # -------------------------------------------------------------------------

    def _read(self) -> dict[str, Any] | None:
        """원장 JSON 읽기 (파일이 없으면 빈 dict, 손상됐으면 None)"""
        if not self.path.exists():
            return {}

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"원장 읽기 오류 ({self.path.name}): {e}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"원장 형식 오류 ({self.path.name}): 최상위가 객체가 아님")
            return None
        return data

    def _load(self, data: dict[str, Any] | None = None) -> dict[str, AppliedRecord]:
        """파일에서 로드

        개별 항목 파싱 실패 시 해당 항목만 건너뛴다.
        알 수 없는 필드는 무시하여 스키마 변경에 대한 하위 호환성을 보장한다.
        """
        if data is None:
            data = self._read() or {}

        records: dict[str, AppliedRecord] = {}
        vaults = data.get("vaults")
        if not isinstance(vaults, dict):
            return records
        for name, raw in vaults.items():
            if not isinstance(raw, dict):
                continue
            try:
                filtered = {k: v for k, v in raw.items() if k in _RECORD_FIELDS}
                filtered["vault_name"] = name
                records[name] = AppliedRecord(**filtered)
            except TypeError:
                logger.debug("원장 항목 로드 스킵: %s", name)
        return records

    def get(self, vault_name: str) -> AppliedRecord | None:
        return self._load().get(vault_name)

    def all(self) -> dict[str, AppliedRecord]:
        return self._load()

    # -------------------------------------------------------------------------
    # 쓰기
    # -------------------------------------------------------------------------

    def _save(self, records: dict[str, AppliedRecord]) -> None:
        """파일에 원자적으로 저장 (write-to-temp-then-rename)"""
        data: dict[str, Any] = {
            "version": STATE_VERSION,
            "account_id": self.account_id,
            "region": self.region,
            "updated_at": _now(),
            "vaults": {name: {k: v for k, v in asdict(r).items() if k != "vault_name"} for name, r in records.items()},
        }
        content = json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp", prefix=".ledger_")
        try:
            with open(fd, "w", encoding="utf-8") as f:
                f.write(content)
            Path(tmp_path).replace(self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def _quarantine(self) -> Path:
        """손상된 원장을 ``.corrupt`` 파일로 보존"""
        backup = self.path.with_name(self.path.name + ".corrupt")
        shutil.copy2(self.path, backup)
        logger.error(f"손상된 원장을 백업하고 새로 작성: {self.path.name} → {backup.name}")
        return backup

    def _update(self, vault_name: str, mutate) -> AppliedRecord | None:
        """락 안에서 read-modify-write

        락 획득 타임아웃 시 기록을 건너뛰고 None을 반환한다 (호출자는 미기록으로 처리).
        기존 파일이 손상되어 있으면 ``.corrupt`` 백업을 남긴 뒤에만 새로 작성한다.
        """
        try:
            with FileLock(self.lock_path, timeout=self.lock_timeout):
                data = self._read()
                if data is None:
                    try:
                        self._quarantine()
                    except OSError as e:
                        logger.error(f"손상된 원장 백업 실패, 기록 건너뜀 ({self.path.name}): {e}")
                        return None
                records = self._load(data or {})
                record = records.get(vault_name) or AppliedRecord(vault_name=vault_name)
                mutate(record)
                records[vault_name] = record
                self._save(records)
                return record
        except Timeout:
            logger.warning(f"원장 저장 타임아웃: {vault_name} (락 획득 실패)")
            return None

    def record_applied(self, vault_name: str, content_hash: str) -> AppliedRecord | None:
        """적용 확인된 해시 기록 (대기 상태 해제)"""

        def _mutate(record: AppliedRecord) -> None:
            record.applied_hash = content_hash
            record.applied_at = _now()
            record.pending_hash = None
            record.last_error = None
            record.failures = 0

        logger.debug(f"적용 해시 기록: {vault_name} {content_hash[:12]}")
        return self._update(vault_name, _mutate)

    def mark_pending(self, vault_name: str, content_hash: str, error: str) -> AppliedRecord | None:
        """적용 대기 상태 기록 (적용 해시는 변경하지 않음)"""

        def _mutate(record: AppliedRecord) -> None:
            record.pending_hash = content_hash
            record.last_error = error
            record.failures += 1

        logger.debug(f"보호 대기 기록: {vault_name} ({error})")
        return self._update(vault_name, _mutate)
