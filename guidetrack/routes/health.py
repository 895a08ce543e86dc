from datetime import datetime, timezone

from fastapi import APIRouter

router = APIRouter()

@router.get("/healthz")
def healthcheck():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
