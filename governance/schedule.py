"""
governance/schedule.py - AWS Backup cron 스케줄 검증

AWS Backup은 6필드 cron 표현식을 UTC 기준으로 평가합니다.

    cron(분 시 일 월 요일 연도)

    - 분: 0-59          , - * /
    - 시: 0-23          , - * /
    - 일: 1-31          , - * ? / L W
    - 월: 1-12, JAN-DEC , - * /
    - 요일: 1-7, SUN-SAT , - * ? L #
    - 연도: 1970-2199   , - * /

일/요일 중 정확히 하나는 '?'여야 합니다. 5필드 입력은 연도 '*'를 붙여 정규화합니다.

Example:
    >>> normalize_schedule("0 3 * * ?")
    'cron(0 3 * * ? *)'
    >>> next_run("cron(0 3 * * ? *)", datetime(2025, 1, 1, tzinfo=timezone.utc))
    datetime.datetime(2025, 1, 1, 3, 0, tzinfo=datetime.timezone.utc)
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

from croniter import croniter

from core.exceptions import InvalidScheduleError

MONTH_NAMES = ("JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC")
DAY_NAMES = ("SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT")


@dataclass(frozen=True)
class _Field:
    name: str
    low: int
    high: int
    names: tuple[str, ...] = field(default=())
    allows_question: bool = False


_FIELDS = (
    _Field("minutes", 0, 59),
    _Field("hours", 0, 23),
    _Field("day-of-month", 1, 31, allows_question=True),
    _Field("month", 1, 12, names=MONTH_NAMES),
    _Field("day-of-week", 1, 7, names=DAY_NAMES, allows_question=True),
    _Field("year", 1970, 2199),
)

_DOM_SPECIAL = re.compile(r"^(L|LW|\d{1,2}W)$")
_DOW_SPECIAL = re.compile(r"^(L|\w{1,3}L|\w{1,3}#[1-5])$")
_DOW_NUMBER = re.compile(r"(?<![#/\d])(\d+)(?!\d)")


def _check_value(expression: str, spec: _Field, token: str) -> None:
    if token.upper() in spec.names:
        return
    if not token.isdigit() or not spec.low <= int(token) <= spec.high:
        raise InvalidScheduleError(
            expression, f"{spec.name} 값 '{token}'이(가) 범위({spec.low}-{spec.high})를 벗어남"
        )


def _check_field(expression: str, spec: _Field, text: str) -> None:
    if text == "?":
        if not spec.allows_question:
            raise InvalidScheduleError(expression, f"{spec.name}에는 '?'를 사용할 수 없음")
        return

    for item in text.split(","):
        if not item:
            raise InvalidScheduleError(expression, f"{spec.name}에 빈 항목이 있음")

        if spec.name == "day-of-month" and _DOM_SPECIAL.match(item):
            digits = item.rstrip("W")
            if digits.isdigit():
                _check_value(expression, spec, digits)
            continue

        if spec.name == "day-of-week" and _DOW_SPECIAL.match(item):
            day = item.split("#")[0].rstrip("L")
            if day:
                _check_value(expression, spec, day)
            continue

        base, _, step = item.partition("/")
        if "/" in item and (not step.isdigit() or int(step) == 0):
            raise InvalidScheduleError(expression, f"{spec.name} 증분 '{step}'이(가) 올바르지 않음")
        if base == "*":
            continue

        start, _, end = base.partition("-")
        _check_value(expression, spec, start)
        if "-" in base:
            _check_value(expression, spec, end)


def split_schedule(expression: str) -> list[str]:
    """cron 표현식을 6개 필드로 분리 (5필드면 연도 '*' 추가)"""
    if not isinstance(expression, str) or not expression.strip():
        raise InvalidScheduleError(str(expression), "빈 표현식")

    body = expression.strip()
    if body.lower().startswith("cron(") and body.endswith(")"):
        body = body[5:-1]
    elif "(" in body or ")" in body:
        raise InvalidScheduleError(expression, "cron(...) 형식만 지원")

    parts = body.split()
    if len(parts) == 5:
        parts.append("*")
    if len(parts) != 6:
        raise InvalidScheduleError(expression, f"필드 수 {len(parts)}개 (5 또는 6개 필요)")
    return parts


def _expand_steps(text: str, high: int) -> str:
    """'n/step' 항목을 croniter가 받는 'n-high/step' 형태로 변환"""
    items = []
    for item in text.split(","):
        base, sep, step = item.partition("/")
        if sep and base != "*" and "-" not in base:
            item = f"{base}-{high}/{step}"
        items.append(item)
    return ",".join(items)


def _to_croniter(parts: list[str]) -> str | None:
    """croniter가 평가할 수 있는 5필드 표현식으로 변환 (불가능하면 None)"""
    minutes, hours, dom, month, dow, year = (_expand_steps(p, spec.high) for p, spec in zip(parts, _FIELDS))
    if year != "*" or any(c in dom + dow for c in "LW#"):
        return None
    dom = "*" if dom == "?" else dom
    # AWS 요일은 1=SUN, croniter는 0=SUN
    dow = "*" if dow == "?" else _DOW_NUMBER.sub(lambda m: str(int(m.group(1)) - 1), dow)
    return " ".join((minutes, hours, dom, month, dow))


def normalize_schedule(expression: str) -> str:
    """cron 표현식을 검증하고 ``cron(m h dom mon dow year)`` 형태로 정규화

    Raises:
        InvalidScheduleError: 문법 오류
    """
    parts = split_schedule(expression)
    for spec, text in zip(_FIELDS, parts):
        _check_field(expression, spec, text)

    dom, dow = parts[2], parts[4]
    if (dom == "?") == (dow == "?"):
        raise InvalidScheduleError(expression, "day-of-month와 day-of-week 중 정확히 하나는 '?'여야 함")

    translated = _to_croniter(parts)
    if translated is not None and not croniter.is_valid(translated):
        raise InvalidScheduleError(expression, "cron 문법 오류")

    return f"cron({' '.join(parts)})"


def next_run(expression: str, after: datetime | None = None) -> datetime | None:
    """다음 실행 시각 (UTC) 미리보기

    L/W/# 또는 연도 지정이 있는 표현식은 미리보기를 지원하지 않으며 None을 반환합니다.
    """
    translated = _to_croniter(split_schedule(normalize_schedule(expression)))
    if translated is None:
        return None
    start = after or datetime.now(timezone.utc)
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    result: datetime = croniter(translated, start).get_next(datetime)
    return result
