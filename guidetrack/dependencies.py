from datetime import tzinfo
from functools import lru_cache
from typing import Any, Dict, List
from zoneinfo import ZoneInfo

from .config import get_settings
from .services import firestore, transport_api
from .services.cache import MemoryStore
from .services.dashboard import DashboardFilters, DashboardService
from .services.report import PdfRenderer

@lru_cache
def get_pending_store() -> MemoryStore:
    return MemoryStore()

@lru_cache
def get_catalog_cache() -> MemoryStore:
    return MemoryStore(ttl_seconds=get_settings().catalog_cache_seconds)

@lru_cache
def get_pdf_renderer() -> PdfRenderer:
    return PdfRenderer(timeout_ms=get_settings().reports_pdf_timeout_ms)

def _fetch_origin(filters: DashboardFilters) -> List[Dict[str, Any]]:
    return transport_api.fetch_transport_records(filters.start_date, filters.end_date)

def get_dashboard_service() -> DashboardService:
    return DashboardService(
        fetch_origin=_fetch_origin,
        fetch_destination=firestore.get_guide_records,
        tz=get_settings().timezone,
    )

def get_display_zone() -> tzinfo:
    return ZoneInfo(get_settings().timezone)
