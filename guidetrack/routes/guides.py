import asyncio
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from pydantic import BaseModel, ConfigDict

from ..auth import get_current_user
from ..dependencies import get_pending_store
from ..errors import UpstreamFetchError
from ..services.cache import MemoryStore, PendingSyncQueue
from ..services.firestore import get_guide_record, get_guide_records, save_guide_record, sync_guide_records
from ..services.ocr import extract_text
from ..services.storage import get_signed_url, upload_guide_attachment

logger = logging.getLogger(__name__)

router = APIRouter()

ATTACHMENT_TYPES = {"image/jpeg", "image/png", "application/pdf"}
OCR_TYPES = {"image/jpeg", "image/png"}

class GuideRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    guideNumber: str
    date: str | None = None
    location: Dict[str, Any] | None = None
    destination: str | None = None
    subDestino: str | None = None
    imageCapture: bool = False
    pdfUrl: str | None = None

class SyncRequest(BaseModel):
    records: List[Dict[str, Any]] = []

@router.post("/guides", status_code=status.HTTP_201_CREATED)
def create_guide(body: GuideRequest, user=Depends(get_current_user),
                 store: MemoryStore = Depends(get_pending_store)):
    record = body.model_dump(exclude_none=True)
    record["guideNumber"] = record["guideNumber"].strip()
    if not record["guideNumber"]:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="guideNumber is empty")
    try:
        return save_guide_record(user["uid"], record)
    except UpstreamFetchError:
        # kept for a later /guides/sync
        entry = PendingSyncQueue(store, user["uid"]).enqueue(record)
        logger.warning("Guide %s queued for sync for user %s", record["guideNumber"], user["uid"])
        return entry

@router.get("/guides")
def list_guides(user=Depends(get_current_user)):
    try:
        return {"records": get_guide_records(user["uid"])}
    except UpstreamFetchError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc

@router.get("/guides/pending")
def list_pending(user=Depends(get_current_user), store: MemoryStore = Depends(get_pending_store)):
    return {"records": PendingSyncQueue(store, user["uid"]).pending()}

@router.post("/guides/sync")
def sync_guides(body: SyncRequest, user=Depends(get_current_user),
                store: MemoryStore = Depends(get_pending_store)):
    queue = PendingSyncQueue(store, user["uid"])
    queued = queue.pending()
    queued_ids = {r["localId"] for r in queued}

    def mark(record):
        if record.get("localId") in queued_ids:
            queue.mark_synced([record["localId"]])

    result = sync_guide_records(user["uid"], [*queued, *body.records], on_saved=mark)
    if result["failed"] and not result["records"]:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="No se pudo guardar el registro.")
    return result

@router.get("/guides/{record_id}")
def get_guide(record_id: str, user=Depends(get_current_user)):
    record = get_guide_record(user["uid"], record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Guide record not found")
    return record

@router.post("/guides/attachments", status_code=status.HTTP_201_CREATED)
async def upload_attachment(
    attachment: UploadFile = File(...),
    guide_number: str | None = None,
    user=Depends(get_current_user),
):
    if attachment.content_type not in ATTACHMENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail="Only JPEG/PNG/PDF attachments are accepted."
        )
    contents = await attachment.read()
    object_path = await asyncio.to_thread(
        upload_guide_attachment, user["uid"], contents, attachment.content_type, guide_number
    )
    return {"object": object_path, "contentType": attachment.content_type}

@router.get("/guides/attachments/url")
def attachment_url(object_name: str = Query(..., alias="object"), user=Depends(get_current_user)):
    if not object_name.startswith(f"guides/{user['uid']}/"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Attachment belongs to another user")
    return {"object": object_name, "url": get_signed_url(object_name)}

@router.post("/guides/ocr")
async def ocr_guide(image: UploadFile = File(...), user=Depends(get_current_user)):
    if image.content_type not in OCR_TYPES:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail="Only JPEG/PNG images can be read."
        )
    contents = await image.read()
    text = await asyncio.to_thread(extract_text, contents)
    return {"text": text}
