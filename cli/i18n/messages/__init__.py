"""
cli/i18n/messages - 메시지 카탈로그

명령별 모듈의 사전을 ``<namespace>.<key>`` 형태의 단일 카탈로그로 합칩니다.
"""

from __future__ import annotations

from typing import TypedDict


class MessageDict(TypedDict):
    ko: str
    en: str


def build_catalog(**namespaces: dict[str, MessageDict]) -> dict[str, MessageDict]:
    """네임스페이스별 사전을 하나로 합침

    Raises:
        ValueError: 언어 문구가 빠진 항목이 있는 경우
    """
    catalog: dict[str, MessageDict] = {}
    for namespace, messages in namespaces.items():
        for key, entry in messages.items():
            if not entry.get("ko") or not entry.get("en"):
                raise ValueError(f"{namespace}.{key}: ko/en 문구가 모두 필요합니다")
            catalog[f"{namespace}.{key}"] = entry
    return catalog


from cli.i18n.messages.cli_commands import CLI_MESSAGES  # noqa: E402

MESSAGES: dict[str, MessageDict] = build_catalog(cli=CLI_MESSAGES)
