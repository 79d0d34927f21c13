"""
Utilidades de hora/fecha compartidas: timestamps ISO, días de la semana y minutos.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


WEEKDAY_CODES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]

CODE_TO_DAY_NAME = {
    "mon": "Monday",
    "tue": "Tuesday",
    "wed": "Wednesday",
    "thu": "Thursday",
    "fri": "Friday",
    "sat": "Saturday",
    "sun": "Sunday",
}

# lower -> code (acepta nombre completo, abreviado y el propio código)
_DAY_ALIASES = {
    **{code: code for code in WEEKDAY_CODES},
    **{name.lower(): code for code, name in CODE_TO_DAY_NAME.items()},
    "tues": "tue",
    "weds": "wed",
    "thur": "thu",
    "thurs": "thu",
}


def now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def normalize_day(value: str) -> Optional[str]:
    """Convierte un nombre de día (Monday, Mon, mon) a su código `mon..sun`.

    Devuelve None si no se reconoce.
    """
    return _DAY_ALIASES.get((value or "").strip().lower())


def day_order(code: str) -> int:
    try:
        return WEEKDAY_CODES.index(code)
    except ValueError:
        return len(WEEKDAY_CODES)


def is_hhmm(value: str) -> bool:
    """True si `value` tiene forma HH:MM válida en 24h."""
    if not isinstance(value, str) or len(value) != 5 or value[2] != ":":
        return False
    hh, mm = value[:2], value[3:]
    if not (hh.isdigit() and mm.isdigit()):
        return False
    return int(hh) < 24 and int(mm) < 60


def to_minutes(hhmm: str) -> int:
    """Minutos desde medianoche para un `HH:MM` ya validado."""
    return int(hhmm[:2]) * 60 + int(hhmm[3:])
