import logging
import os
from functools import lru_cache

import firebase_admin
from fastapi import Header, HTTPException, status
from firebase_admin import auth, credentials

from .config import get_settings

logger = logging.getLogger(__name__)

@lru_cache
def get_firebase_app() -> firebase_admin.App:
    """Initialize the default Firebase app once, with the service account when present."""
    settings = get_settings()
    if os.path.exists(settings.firebase_cert_path):
        cred = credentials.Certificate(settings.firebase_cert_path)
    else:
        logger.info("Firebase cert %s not found, using application default credentials",
                    settings.firebase_cert_path)
        cred = credentials.ApplicationDefault()
    options = {"projectId": settings.project_id} if settings.project_id else None
    return firebase_admin.initialize_app(cred, options)

def get_current_user(authorization: str = Header(...)):
    if not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Bearer token")
    token = authorization.split(" ", 1)[1]
    try:
        decoded = auth.verify_id_token(token, app=get_firebase_app())
        return decoded
    except Exception as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc
