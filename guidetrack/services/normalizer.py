"""
Canonicalization of guide records coming from the two source systems.

Origin-side rows come from the transport REST API (MySQL column names such as
``guia``, ``fecha``, ``destino``). Destination-side rows are Firestore guide
documents written by the scanning app (``guideNumber``, ``date``,
``location: {latitude, longitude, alias}``). Both are folded into a single
``NormalizedGuide``.

Nothing in here raises on malformed input: missing or unusable fields degrade
to the sentinels in ``guidetrack.constants``.
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from ..constants import (
    CAPACITY_FIELDS,
    CAPACITY_KEYWORDS,
    CARGO_TYPE_FIELDS,
    CARGO_TYPE_KEYWORDS,
    DESTINATION_FIELDS,
    DRIVER_FIELDS,
    GUIDE_NUMBER_FIELDS,
    NOT_DEFINED,
    ORIGIN_FIELDS,
    SUB_DESTINATION_FIELDS,
    TIMESTAMP_FIELDS,
)
from ..models import NormalizedGuide

_NUMBER_RE = re.compile(r"-?\d[\d.,]*")
_DIGIT_RE = re.compile(r"\d")
_NON_DIGIT_RE = re.compile(r"\D+")
_SEPARATOR_RE = re.compile(r"[\W_]+", re.UNICODE)

_DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d-%m-%Y %H:%M:%S",
    "%d/%m/%Y",
)

# ===================== VALUE HELPERS =====================

def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False

def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()

def first_present(record: Mapping[str, Any], aliases: Iterable[str]) -> Optional[Any]:
    """Return the first non-blank value among ``aliases`` (in order)."""
    if not isinstance(record, Mapping):
        return None
    for alias in aliases:
        value = record.get(alias)
        if not _is_blank(value):
            return value
    return None

def _decimal_token(token: str) -> str:
    # es-CL writes "1.234,5"; the transport API writes "1234.50"
    if "," in token and "." in token:
        if token.rfind(",") > token.rfind("."):
            return token.replace(".", "").replace(",", ".")
        return token.replace(",", "")
    if "," in token:
        return token.replace(",", ".") if token.count(",") == 1 else token.replace(",", "")
    if token.count(".") > 1:
        return token.replace(".", "")
    return token

def parse_quantity(value: Any) -> Optional[float]:
    """Coerce ``12``, ``"12,5"``, ``"1.234,5"`` or ``"12 m3"`` to a finite float, else ``None``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        match = _NUMBER_RE.search(value.strip())
        if not match:
            return None
        try:
            number = float(_decimal_token(match.group(0)))
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None

def parse_timestamp(value: Any, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Parse datetimes, Firestore timestamps, ISO strings and epoch millis.

    Naive values are read as wall time in ``tz`` (UTC when not given), and
    aware values are converted to ``tz`` so every record of a day shares one
    clock. The result is always timezone-aware, or ``None`` when unusable.
    """
    zone = tz or timezone.utc
    if value is None or isinstance(value, bool):
        return None

    parsed: Optional[datetime] = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            try:
                parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                return None
    elif isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            parsed = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            for fmt in _DATETIME_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
    elif hasattr(value, "to_datetime"):
        try:
            parsed = value.to_datetime()
        except (TypeError, ValueError):
            return None

    if not isinstance(parsed, datetime):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)
    return parsed.astimezone(tz) if tz else parsed

# ===================== GUIDE KEYS =====================

def normalize_key(value: Any) -> str:
    """Correlation key for a guide number.

    Numeric identifiers keep only their digits without leading zeros (an
    all-zero value keeps its digits). Identifiers without digits drop
    whitespace and separators.
    """
    text = _as_text(value).lower()
    if not text:
        return ""
    if _DIGIT_RE.search(text):
        digits = _NON_DIGIT_RE.sub("", text)
        stripped = digits.lstrip("0")
        return stripped or digits
    return _SEPARATOR_RE.sub("", text)

# ===================== FIELD RULES =====================

def _usable(value: Any, numeric: bool) -> bool:
    if numeric:
        return parse_quantity(value) is not None
    if isinstance(value, Mapping):
        return False
    return not _is_blank(value)

def find_field_by_keywords(
    record: Mapping[str, Any],
    keywords: Sequence[str],
    numeric: bool = False,
) -> Optional[Any]:
    """Scan fields in record order; first name containing a keyword with a usable value wins."""
    if not isinstance(record, Mapping):
        return None
    lowered = [k.lower() for k in keywords]
    for name, value in record.items():
        name_lower = str(name).lower()
        if not any(k in name_lower for k in lowered):
            continue
        if _usable(value, numeric):
            return value
    return None

@dataclass(frozen=True)
class FieldRule:
    candidates: Sequence[str]
    keywords: Sequence[str]
    parser: Callable[[Any], Any]
    numeric: bool = False

    def resolve(self, record: Mapping[str, Any]) -> Optional[Any]:
        if not isinstance(record, Mapping):
            return None
        for name in self.candidates:
            value = record.get(name)
            if _usable(value, self.numeric):
                return self.parser(value)
        value = find_field_by_keywords(record, self.keywords, numeric=self.numeric)
        if value is None:
            return None
        return self.parser(value)

def _parse_label(value: Any) -> Optional[str]:
    text = _as_text(value)
    return text or None

CAPACITY_RULE = FieldRule(CAPACITY_FIELDS, CAPACITY_KEYWORDS, parse_quantity, numeric=True)
CARGO_TYPE_RULE = FieldRule(CARGO_TYPE_FIELDS, CARGO_TYPE_KEYWORDS, _parse_label)

def resolve_capacity(record: Mapping[str, Any]) -> Optional[float]:
    return CAPACITY_RULE.resolve(record)

def resolve_cargo_type(record: Mapping[str, Any]) -> Optional[str]:
    return CARGO_TYPE_RULE.resolve(record)

def resolve_driver(record: Mapping[str, Any]) -> Optional[str]:
    value = first_present(record, DRIVER_FIELDS)
    if isinstance(value, Mapping):
        value = first_present(value, ("name", "nombre", "alias"))
    text = _as_text(value)
    return text or None

# ===================== NORMALIZE =====================

def _resolve_place(record: Mapping[str, Any], aliases: Iterable[str], fallback: Any) -> Optional[str]:
    # direct string first
    for alias in aliases:
        value = record.get(alias)
        if isinstance(value, str) and value.strip():
            return value.strip()
    for alias in aliases:
        value = record.get(alias)
        if isinstance(value, Mapping):
            nested = first_present(value, ("alias", "name"))
            if nested is not None and _as_text(nested):
                return _as_text(nested)
    if isinstance(fallback, str) and fallback.strip():
        return fallback.strip()
    return None

def normalize(
    raw: Mapping[str, Any],
    fallback: Optional[Mapping[str, Any]] = None,
    tz: Optional[tzinfo] = None,
) -> NormalizedGuide:
    record = raw if isinstance(raw, Mapping) else {}
    fallback = fallback or {}

    guide_number = _as_text(first_present(record, GUIDE_NUMBER_FIELDS))
    origin = _resolve_place(record, ORIGIN_FIELDS, fallback.get("origin")) or NOT_DEFINED
    destination = _resolve_place(record, DESTINATION_FIELDS, fallback.get("destination")) or NOT_DEFINED
    sub_destination = _resolve_place(record, SUB_DESTINATION_FIELDS, fallback.get("sub_destination")) or ""
    timestamp = parse_timestamp(first_present(record, TIMESTAMP_FIELDS), tz)

    return NormalizedGuide(
        guide_number=guide_number,
        origin=origin,
        destination=destination,
        sub_destination=sub_destination,
        timestamp=timestamp,
        raw_record=record,
    )

# ===================== SOURCE ADAPTERS =====================

def adapt_transport_record(raw: Mapping[str, Any], tz: Optional[tzinfo] = None) -> NormalizedGuide:
    """Origin-side row from the transport API."""
    return normalize(raw, tz=tz)

def adapt_guide_record(raw: Mapping[str, Any], tz: Optional[tzinfo] = None) -> NormalizedGuide:
    """Destination-side Firestore guide document."""
    record = raw if isinstance(raw, Mapping) else {}
    location = record.get("location")
    origin_fallback = None
    if isinstance(location, Mapping):
        origin_fallback = location.get("alias") or location.get("name")
    fallback = {
        "origin": origin_fallback,
        "destination": record.get("destination") or record.get("destino"),
    }
    return normalize(record, fallback, tz=tz)
