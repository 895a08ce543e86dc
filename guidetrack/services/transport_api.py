"""
Client for the transport REST API (origin-side dispatch rows).

The API answers either a bare JSON array or an envelope carrying the rows
under ``data`` or ``records``; both are accepted.
"""

import logging
from datetime import date
from functools import lru_cache
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter, Retry

from ..config import get_settings
from ..errors import UpstreamFetchError

logger = logging.getLogger(__name__)

PATHS = {
    "by_date": "transporte",
    "by_guide": "transporte_by_guide.php",
    "destinations": "destinos_with_subdestinos.php",
    "locations": "ubicaciones.php",
}

@lru_cache
def get_session() -> requests.Session:
    settings = get_settings()
    session = requests.Session()
    retries = Retry(
        total=settings.transport_api_retries,
        backoff_factor=0.5,
        status_forcelist=(502, 503, 504),
        allowed_methods=("GET",),
    )
    session.mount("http://", HTTPAdapter(max_retries=retries))
    session.mount("https://", HTTPAdapter(max_retries=retries))
    return session

def _url(name: str) -> Optional[str]:
    base = get_settings().transport_api_base_url.rstrip("/")
    if not base:
        return None
    return f"{base}/{PATHS[name]}"

def extract_rows(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, list):
        rows = payload
    elif isinstance(payload, dict):
        rows = payload.get("records")
        if not isinstance(rows, list):
            rows = payload.get("data")
        if not isinstance(rows, list):
            rows = []
    else:
        rows = []
    return [row for row in rows if isinstance(row, dict)]

def _get(name: str, params: Dict[str, Any], failure_message: str) -> Any:
    url = _url(name)
    if url is None:
        logger.warning("transport_api_base_url is not configured, returning no rows for %s", name)
        return []
    try:
        response = get_session().get(url, params=params, timeout=get_settings().transport_api_timeout)
        response.raise_for_status()
        return response.json()
    except (requests.RequestException, ValueError) as exc:
        logger.error("Transport API %s failed: %s", name, exc)
        raise UpstreamFetchError("transport_api", failure_message) from exc

def fetch_transport_records(start_date: Optional[date], end_date: Optional[date]) -> List[Dict[str, Any]]:
    """Origin-side rows for a date range; place filters are applied by the caller."""
    params = {
        "startDate": start_date.isoformat() if start_date else None,
        "endDate": end_date.isoformat() if end_date else None,
    }
    params = {k: v for k, v in params.items() if v is not None}
    payload = _get("by_date", params, "No se pudieron obtener las guías de ubicación.")
    rows = extract_rows(payload)
    logger.info("Transport API returned %d rows for %s", len(rows), params)
    return rows

def fetch_transport_by_guide(guide: str) -> List[Dict[str, Any]]:
    payload = _get("by_guide", {"guide": guide.strip()}, "No se pudo consultar la guía.")
    return extract_rows(payload)

def fetch_transport_destinations() -> List[Dict[str, Any]]:
    payload = _get("destinations", {}, "No se pudieron obtener los destinos.")
    return extract_rows(payload)

def fetch_transport_locations() -> List[Dict[str, Any]]:
    payload = _get("locations", {}, "No se pudieron obtener las ubicaciones.")
    return extract_rows(payload)
