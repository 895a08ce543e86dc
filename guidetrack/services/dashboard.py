import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union
from zoneinfo import ZoneInfo


from ..constants import ALL, DEFAULT_RANGE_DAYS
from ..models import DriverIntervalEntry, NormalizedGuide, ReconciliationResult
from .intervals import build_driver_catalog, column_totals, compute_intervals, interval_columns
from .normalizer import adapt_guide_record, adapt_transport_record
from .reconciliation import reconcile

logger = logging.getLogger(__name__)

@dataclass
class DashboardFilters:
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    origin: str = ALL
    destination: str = ALL
    sub_destination: str = ALL

    @classmethod
    def default(cls, today: Optional[date] = None, tz: Optional[tzinfo] = None) -> "DashboardFilters":
        """Last week up to today; "today" is taken in ``tz`` when given."""
        today = today or datetime.now(tz).date()
        return cls(start_date=today - timedelta(days=DEFAULT_RANGE_DAYS), end_date=today)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "ubicacion": self.origin,
            "destino": self.destination,
            "subDestino": self.sub_destination,
        }

@dataclass
class DashboardResult:
    filters: DashboardFilters
    origin_guides: List[NormalizedGuide]
    destination_guides: List[NormalizedGuide]
    reconciliation: ReconciliationResult
    intervals: List[DriverIntervalEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        missing = self.reconciliation.missing_in_destination + self.reconciliation.missing_in_origin
        return {
            "filters": self.filters.to_dict(),
            "totals": {
                "origin": len(self.origin_guides),
                "destination": len(self.destination_guides),
                "matches": len(self.reconciliation.matches),
                "differences": len(missing),
            },
            "reconciliation": self.reconciliation.to_dict(),
            "intervals": [entry.to_dict() for entry in self.intervals],
            "columns": interval_columns(self.intervals),
            "columnTotals": column_totals(self.intervals),
        }

# ===================== FILTERING =====================

def _matches_text(value: str, wanted: Optional[str]) -> bool:
    if not wanted or wanted == ALL:
        return True
    return wanted.strip().lower() in (value or "").lower()

def filter_guides(
    guides: Iterable[NormalizedGuide],
    filters: DashboardFilters,
    tz: tzinfo,
) -> List[NormalizedGuide]:
    """Drop guides without a number, out of the date window, or not matching the place filters.

    A guide without a timestamp is always inside the window.
    """
    start = datetime.combine(filters.start_date, time.min, tzinfo=tz) if filters.start_date else None
    end = datetime.combine(filters.end_date, time(23, 59, 59), tzinfo=tz) if filters.end_date else None
    kept = []
    for guide in guides:
        if not guide.guide_number:
            continue
        if guide.timestamp is not None:
            if start and guide.timestamp < start:
                continue
            if end and guide.timestamp > end:
                continue
        if not _matches_text(guide.origin, filters.origin):
            continue
        if not _matches_text(guide.destination, filters.destination):
            continue
        if not _matches_text(guide.sub_destination, filters.sub_destination):
            continue
        kept.append(guide)
    return kept

def compute_dashboard(
    origin_rows: Iterable[Mapping[str, Any]],
    destination_rows: Iterable[Mapping[str, Any]],
    filters: DashboardFilters,
    tz: tzinfo,
) -> DashboardResult:
    # the transport API only filters by date
    origin = filter_guides((adapt_transport_record(r, tz) for r in origin_rows), filters, tz)
    destination = filter_guides((adapt_guide_record(r, tz) for r in destination_rows), filters, tz)

    result = reconcile(origin, destination)
    driver_lookup, cargo_lookup = build_driver_catalog(origin)
    entries = compute_intervals(destination, driver_lookup, cargo_lookup)
    return DashboardResult(
        filters=filters,
        origin_guides=origin,
        destination_guides=destination,
        reconciliation=result,
        intervals=entries,
    )

# ===================== SERVICE =====================

OriginFetcher = Callable[[DashboardFilters], List[Dict[str, Any]]]
DestinationFetcher = Callable[[str], List[Dict[str, Any]]]

class DashboardService:
    def __init__(self, fetch_origin: OriginFetcher, fetch_destination: DestinationFetcher, tz: Union[str, tzinfo]):
        self.fetch_origin = fetch_origin
        self.fetch_destination = fetch_destination
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else tz

    async def run(self, filters: DashboardFilters, user_id: str) -> DashboardResult:
        """Fetch both sides concurrently, then reconcile and aggregate.

        An ``UpstreamFetchError`` from either fetch fails the whole call.
        """
        origin_rows, destination_rows = await asyncio.gather(
            asyncio.to_thread(self.fetch_origin, filters),
            asyncio.to_thread(self.fetch_destination, user_id),
        )
        logger.info(
            "Dashboard for %s: %d origin rows, %d destination rows",
            user_id, len(origin_rows), len(destination_rows),
        )
        return compute_dashboard(origin_rows, destination_rows, filters, self.tz)
