import logging
import unicodedata
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1 import Client
from google.cloud.firestore_v1.base_query import FieldFilter

from ..auth import get_firebase_app
from ..config import get_settings
from ..errors import UpstreamFetchError
from .normalizer import parse_timestamp

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

@lru_cache
def get_db() -> Client:
    return firestore.client(app=get_firebase_app())

def _with_id(doc) -> Dict[str, Any]:
    return {"id": doc.id, **(doc.to_dict() or {})}

# ===================== GUIDE RECORDS =====================

def save_guide_record(uid: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
    settings = get_settings()
    record = {
        **payload,
        "userId": uid,
        "createdAt": payload.get("createdAt") or firestore.SERVER_TIMESTAMP,
        "updatedAt": firestore.SERVER_TIMESTAMP,
        "synced": True,
    }
    try:
        _, doc_ref = get_db().collection(settings.firestore_guides_collection).add(record)
    except google_exceptions.GoogleAPIError as exc:
        logger.error("Firestore rejected guide %s for %s: %s", payload.get("guideNumber"), uid, exc)
        raise UpstreamFetchError("firestore", "No se pudo guardar el registro.") from exc
    logger.info("Saved guide %s for user %s as %s", payload.get("guideNumber"), uid, doc_ref.id)
    return {"id": doc_ref.id, **{k: v for k, v in record.items() if v is not firestore.SERVER_TIMESTAMP}}

def _created_sort_key(record: Mapping[str, Any]) -> datetime:
    return parse_timestamp(record.get("createdAt")) or parse_timestamp(record.get("date")) or _EPOCH

def get_guide_records(uid: str) -> List[Dict[str, Any]]:
    """All guide records of ``uid``, newest first."""
    settings = get_settings()
    query = get_db().collection(settings.firestore_guides_collection).where(
        filter=FieldFilter("userId", "==", uid)
    )
    try:
        records = [_with_id(doc) for doc in query.stream()]
    except google_exceptions.GoogleAPIError as exc:
        logger.error("Firestore guide query failed for %s: %s", uid, exc)
        raise UpstreamFetchError("firestore", "No se pudieron obtener los registros de guías.") from exc
    records.sort(key=_created_sort_key, reverse=True)
    return records

def get_guide_record(uid: str, record_id: str) -> dict | None:
    settings = get_settings()
    doc = get_db().collection(settings.firestore_guides_collection).document(record_id).get()
    if not doc.exists:
        return None
    record = _with_id(doc)
    return record if record.get("userId") == uid else None

def sync_guide_records(
    uid: str,
    records: Iterable[Mapping[str, Any]],
    on_saved: Optional[Callable[[Mapping[str, Any]], None]] = None,
) -> Dict[str, Any]:
    """Save every record not flagged ``synced``.

    A failed save is skipped so the remaining records still go through.
    ``on_saved`` is called with the source record right after its save.
    """
    records = list(records or [])
    if not records:
        return {"success": False, "message": "No hay registros para sincronizar", "records": [],
                "syncedLocalIds": [], "failed": 0}

    saved, synced_ids, failed = [], [], 0
    for record in records:
        if record.get("synced"):
            continue
        payload = {k: v for k, v in record.items() if k not in {"file", "synced", "localId"}}
        payload["createdAt"] = parse_timestamp(record.get("date")) or datetime.now(timezone.utc)
        try:
            saved.append(save_guide_record(uid, payload))
        except UpstreamFetchError:
            failed += 1
            continue
        if record.get("localId"):
            synced_ids.append(record["localId"])
        if on_saved is not None:
            on_saved(record)

    message = f"{len(saved)} registros sincronizados correctamente"
    if failed:
        logger.warning("Sync for %s saved %d records, %d failed", uid, len(saved), failed)
        message = f"{len(saved)} registros sincronizados, {failed} con error"
    return {
        "success": failed == 0,
        "message": message,
        "records": saved,
        "syncedLocalIds": synced_ids,
        "failed": failed,
    }

# ===================== ROUTE HIGHLIGHTS =====================

def _slug(value: Optional[str]) -> str:
    decomposed = unicodedata.normalize("NFKD", (value or "").strip().lower())
    ascii_text = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return "-".join("".join(ch if ch.isalnum() else " " for ch in ascii_text).split()) or "none"

def highlight_id(destination: str, sub_destination: Optional[str], origin: str) -> str:
    return "__".join(_slug(part) for part in (destination, sub_destination, origin))

def get_route_highlight(destination: str, sub_destination: Optional[str], origin: str) -> dict | None:
    settings = get_settings()
    doc = (
        get_db()
        .collection(settings.firestore_highlights_collection)
        .document(highlight_id(destination, sub_destination, origin))
        .get()
    )
    return doc.to_dict() if doc.exists else None

def save_route_highlight(
    destination: str,
    sub_destination: Optional[str],
    origin: str,
    average_distance: Optional[str],
    route_conditions: Optional[str],
) -> Dict[str, Any]:
    settings = get_settings()
    payload = {
        "destination": destination,
        "subDestination": sub_destination or "",
        "origin": origin,
        "averageDistance": average_distance,
        "routeConditions": route_conditions,
        "updatedAt": datetime.now(timezone.utc).isoformat(),
    }
    doc_ref = (
        get_db()
        .collection(settings.firestore_highlights_collection)
        .document(highlight_id(destination, sub_destination, origin))
    )
    doc_ref.set(payload, merge=True)
    return payload

def delete_route_highlight(destination: str, sub_destination: Optional[str], origin: str) -> None:
    settings = get_settings()
    (
        get_db()
        .collection(settings.firestore_highlights_collection)
        .document(highlight_id(destination, sub_destination, origin))
        .delete()
    )

# ===================== CATALOGS =====================

def list_destinations() -> List[Dict[str, Any]]:
    settings = get_settings()
    docs = get_db().collection(settings.firestore_destinations_collection).stream()
    destinations = [_with_id(doc) for doc in docs]
    for destination in destinations:
        destination.setdefault("subDestinations", [])
    return sorted(destinations, key=lambda d: (d.get("name") or "").lower())

def create_destination(name: str, sub_destinations: Optional[List[str]] = None) -> Dict[str, Any]:
    settings = get_settings()
    payload = {"name": name.strip(), "subDestinations": [s.strip() for s in sub_destinations or [] if s.strip()]}
    _, doc_ref = get_db().collection(settings.firestore_destinations_collection).add(payload)
    return {"id": doc_ref.id, **payload}

def delete_destination(destination_id: str) -> None:
    settings = get_settings()
    get_db().collection(settings.firestore_destinations_collection).document(destination_id).delete()

def add_sub_destination(destination_id: str, name: str) -> None:
    settings = get_settings()
    doc_ref = get_db().collection(settings.firestore_destinations_collection).document(destination_id)
    doc_ref.update({"subDestinations": firestore.ArrayUnion([name.strip()])})

def remove_sub_destination(destination_id: str, name: str) -> None:
    settings = get_settings()
    doc_ref = get_db().collection(settings.firestore_destinations_collection).document(destination_id)
    doc_ref.update({"subDestinations": firestore.ArrayRemove([name])})

def list_locations() -> List[Dict[str, Any]]:
    settings = get_settings()
    docs = get_db().collection(settings.firestore_locations_collection).stream()
    return sorted((_with_id(doc) for doc in docs), key=lambda d: (d.get("name") or "").lower())

def create_location(name: str) -> Dict[str, Any]:
    settings = get_settings()
    payload = {"name": name.strip()}
    _, doc_ref = get_db().collection(settings.firestore_locations_collection).add(payload)
    return {"id": doc_ref.id, **payload}

def delete_location(location_id: str) -> None:
    settings = get_settings()
    get_db().collection(settings.firestore_locations_collection).document(location_id).delete()
