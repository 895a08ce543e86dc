"""
Per-driver reception intervals.

Destination-side receipts are grouped by the driver that the origin-side
transport row assigns to the same guide, ordered in time, and turned into the
gaps between consecutive receipts plus a closing marker for the last one.
Each interval carries the load (cargo capacity) of the receipt that closes it,
which feeds the per-column day totals of the report.
"""

import logging
import math
import unicodedata
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ..constants import INTERVAL_COLUMN_LABEL, NO_CARGO_TYPE, UNREGISTERED_DRIVER
from ..models import Closing, DriverCargo, DriverIntervalEntry, Gap, Interval, NormalizedGuide
from .formatting import format_volume
from .normalizer import normalize_key, resolve_capacity, resolve_cargo_type, resolve_driver

logger = logging.getLogger(__name__)

DriverLookup = Mapping[str, str]
CargoLookup = Mapping[str, DriverCargo]

def build_driver_catalog(origin_records: Iterable[NormalizedGuide]) -> Tuple[Dict[str, str], Dict[str, DriverCargo]]:
    """Driver name and cargo metadata per guide key, taken from origin-side rows.

    The first non-empty value of each field wins; later rows only fill gaps.
    """
    cargo_lookup: Dict[str, DriverCargo] = {}
    for guide in origin_records:
        key = normalize_key(guide.guide_number)
        if not key:
            continue
        raw = guide.raw_record
        entry = cargo_lookup.setdefault(key, DriverCargo())
        if entry.driver_name is None:
            entry.driver_name = resolve_driver(raw)
        if entry.cargo_type is None:
            entry.cargo_type = resolve_cargo_type(raw)
        if entry.cargo_capacity is None:
            entry.cargo_capacity = resolve_capacity(raw)

    driver_lookup = {key: c.driver_name for key, c in cargo_lookup.items() if c.driver_name}
    return driver_lookup, cargo_lookup

def _collation_key(name: str) -> str:
    decomposed = unicodedata.normalize("NFKD", name or "")
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()

def _positive(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value > 0

class _RecordInfo:
    __slots__ = ("guide", "capacity", "cargo_type")

    def __init__(self, guide: NormalizedGuide, cargo_lookup: CargoLookup):
        self.guide = guide
        cargo = cargo_lookup.get(normalize_key(guide.guide_number))
        capacity = cargo.cargo_capacity if cargo else None
        if capacity is None:
            capacity = resolve_capacity(guide.raw_record)
        cargo_type = cargo.cargo_type if cargo else None
        if cargo_type is None:
            cargo_type = resolve_cargo_type(guide.raw_record)
        self.capacity = capacity
        self.cargo_type = cargo_type

def _build_entry(driver: str, records: List[_RecordInfo]) -> DriverIntervalEntry:
    first_capacity = next((r.capacity for r in records if r.capacity is not None), None)

    def load_of(info: _RecordInfo) -> Optional[float]:
        return info.capacity if info.capacity is not None else first_capacity

    # sorted() is stable, equal timestamps keep input order
    timed = [r for r in records if r.guide.timestamp is not None]
    dropped = len(records) - len(timed)
    if dropped:
        logger.warning("Driver %s: %d reception(s) without a usable timestamp left out", driver, dropped)
    timed = sorted(timed, key=lambda r: r.guide.timestamp)

    intervals: List[Interval] = []
    for previous, current in zip(timed, timed[1:]):
        minutes = (current.guide.timestamp - previous.guide.timestamp).total_seconds() / 60.0
        if not math.isfinite(minutes) or minutes < 0:
            continue
        intervals.append(
            Gap(
                minutes=minutes,
                from_guide=previous.guide.guide_number,
                to_guide=current.guide.guide_number,
                from_time=previous.guide.timestamp,
                to_time=current.guide.timestamp,
                load_value=load_of(current),
            )
        )
    if timed:
        last = timed[-1]
        intervals.append(Closing(guide_number=last.guide.guide_number, time=last.guide.timestamp, load_value=load_of(last)))

    totals: Dict[str, float] = {}
    for info in records:
        if info.capacity is None:
            continue
        label = info.cargo_type or NO_CARGO_TYPE
        totals[label] = totals.get(label, 0.0) + info.capacity
    totals = {label: total for label, total in totals.items() if _positive(total)}

    return DriverIntervalEntry(
        driver=driver,
        receptions=[r.guide for r in timed],
        intervals=intervals,
        totals_by_type=totals,
        total_transported=sum(totals.values()),
        capacity_label=format_volume(first_capacity) if first_capacity is not None else None,
    )

def compute_intervals(
    destination_records: Iterable[NormalizedGuide],
    driver_lookup: DriverLookup,
    cargo_lookup: Optional[CargoLookup] = None,
) -> List[DriverIntervalEntry]:
    cargo_lookup = cargo_lookup or {}
    groups: Dict[str, List[_RecordInfo]] = {}
    for guide in destination_records:
        if not guide.guide_number:
            continue
        driver = driver_lookup.get(normalize_key(guide.guide_number)) or UNREGISTERED_DRIVER
        groups.setdefault(driver, []).append(_RecordInfo(guide, cargo_lookup))

    entries = [_build_entry(driver, records) for driver, records in groups.items()]
    entries.sort(key=lambda e: (-len(e.receptions), _collation_key(e.driver), e.driver))
    return entries

def column_totals(entries: Iterable[DriverIntervalEntry]) -> List[float]:
    """Load summed per interval column across drivers."""
    entries = list(entries)
    width = max((len(e.intervals) for e in entries), default=0)
    totals = [0.0] * width
    for entry in entries:
        for idx, interval in enumerate(entry.intervals):
            if _positive(interval.load_value):
                totals[idx] += interval.load_value
    return totals

def interval_columns(entries: Iterable[DriverIntervalEntry]) -> List[str]:
    width = max((len(e.intervals) for e in entries), default=0)
    return [INTERVAL_COLUMN_LABEL.format(index=i + 1) for i in range(width)]
