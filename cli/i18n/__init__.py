"""
cli/i18n - bgov 출력 문구 번역

명령 출력(표 제목, 조치 라벨, 오류 접두사)을 한국어(기본)/영어로 제공합니다.
언어는 ``bgov --lang`` 옵션에서 한 번 정해지며 ContextVar에 보관됩니다.

Usage:
    from cli.i18n import set_lang, t

    set_lang("en")
    t("cli.action_applied")                    # "applied"
    t("cli.summary", changed=1, total=4)       # "1 changed / 4 total"
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any

logger = logging.getLogger(__name__)

SUPPORTED_LANGS = ("ko", "en")
DEFAULT_LANG = "ko"

_lang: ContextVar[str] = ContextVar("bgov_lang", default=DEFAULT_LANG)


def get_lang() -> str:
    return _lang.get()


def set_lang(lang: str) -> None:
    """출력 언어 설정 (지원하지 않는 코드는 기본 언어로)"""
    _lang.set(lang if lang in SUPPORTED_LANGS else DEFAULT_LANG)


def t(key: str, lang: str | None = None, **kwargs: Any) -> str:
    """메시지 키를 현재 언어 문구로 변환

    Args:
        key: ``cli.<name>`` 형식의 메시지 키
        lang: 언어 지정 (None이면 현재 컨텍스트 언어)
        **kwargs: 문구의 ``{name}`` 자리에 채울 값

    Returns:
        번역된 문구. 등록되지 않은 키는 키 문자열 그대로 반환.
        채울 값이 부족하면 치환하지 않은 원문을 반환합니다.
    """
    from cli.i18n.messages import MESSAGES

    entry = MESSAGES.get(key)
    if entry is None:
        logger.debug(f"등록되지 않은 메시지 키: {key}")
        return key

    code = lang if lang in SUPPORTED_LANGS else get_lang()
    text = entry.get(code) or entry[DEFAULT_LANG]
    if not kwargs:
        return text
    try:
        return text.format(**kwargs)
    except (KeyError, IndexError, ValueError):
        logger.debug(f"메시지 치환 실패: {key} {sorted(kwargs)}")
        return text


__all__ = ["DEFAULT_LANG", "SUPPORTED_LANGS", "get_lang", "set_lang", "t"]
