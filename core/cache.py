"""
core/cache.py - 로컬 상태 파일 경로

적용 해시 원장은 계정/리전마다 JSON 파일 하나이며,
기본 위치는 ``{project_root}/temp/state`` 입니다.
``BGOV_STATE_DIR`` (``Settings.state_dir``)를 지정하면 그 디렉토리를 그대로 사용합니다.
"""

from __future__ import annotations

from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
CACHE_ROOT = PROJECT_ROOT / "temp"


def get_cache_dir(category: str = "") -> Path:
    """캐시 하위 디렉토리 (없으면 생성)

    Example:
        >>> get_cache_dir("state")
        PosixPath('/path/to/project/temp/state')
    """
    directory = CACHE_ROOT / category if category else CACHE_ROOT
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def ledger_file(account_id: str, region: str, state_dir: str | Path | None = None) -> Path:
    """계정/리전 원장 파일 경로 (``<account>_<region>.json``)"""
    if state_dir:
        base = Path(state_dir)
        base.mkdir(parents=True, exist_ok=True)
    else:
        base = get_cache_dir("state")
    return base / f"{account_id}_{region}.json"
