import math
from datetime import datetime, tzinfo
from typing import Any, Optional

from ..constants import VOLUME_UNIT

_MONTHS = (
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
)
_MONTHS_SHORT = tuple(m[:3] for m in _MONTHS)

EMPTY = "—"

def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None

def format_number(value: Any) -> str:
    """es-CL style: thousands with '.', decimals with ',', at most one decimal."""
    number = _as_float(value)
    if number is None:
        return EMPTY
    rounded = round(number, 1)
    if rounded.is_integer():
        text = f"{int(rounded):,}"
    else:
        text = f"{rounded:,.1f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")

def format_volume(value: Any) -> str:
    text = format_number(value)
    return text if text == EMPTY else f"{text} {VOLUME_UNIT}"

def format_minutes(minutes: Any) -> str:
    minutes = _as_float(minutes)
    if minutes is None:
        return EMPTY
    if minutes < 1:
        return f"{round(minutes * 60)} s"
    if minutes < 60:
        return f"{minutes:.1f} min"
    hours = int(minutes // 60)
    rest = round(minutes % 60)
    if rest == 60:
        hours, rest = hours + 1, 0
    return f"{hours} h" if rest == 0 else f"{hours} h {rest} min"

def _as_datetime(value: Any, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    parsed = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed is not None and tz is not None and parsed.tzinfo is not None:
        parsed = parsed.astimezone(tz)
    return parsed

def format_long_date(value: Any, tz: Optional[tzinfo] = None) -> str:
    parsed = _as_datetime(value, tz)
    if parsed is None:
        return EMPTY
    return f"{parsed.day} de {_MONTHS[parsed.month - 1]} de {parsed.year}"

def format_date_time(value: Any, tz: Optional[tzinfo] = None) -> str:
    parsed = _as_datetime(value, tz)
    if parsed is None:
        return EMPTY
    return f"{parsed.day} {_MONTHS_SHORT[parsed.month - 1]} {parsed.year}, {parsed:%H:%M}"

def format_time(value: Any, tz: Optional[tzinfo] = None) -> str:
    parsed = _as_datetime(value, tz)
    if parsed is None:
        return EMPTY
    return f"{parsed:%H:%M}"
