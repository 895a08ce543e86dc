import uuid
from functools import lru_cache

from google.cloud import storage

from ..config import get_settings

EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png", "application/pdf": "pdf"}

@lru_cache
def get_bucket() -> storage.Bucket:
    settings = get_settings()
    storage_client = storage.Client(project=settings.project_id)
    return storage_client.bucket(settings.storage_guides_bucket)

def upload_guide_attachment(uid: str, file_bytes: bytes, content_type: str, guide_number: str | None = None) -> str:
    stem = f"{guide_number}_{uuid.uuid4().hex}" if guide_number else uuid.uuid4().hex
    object_name = f"guides/{uid}/{stem}.{EXTENSIONS.get(content_type, 'bin')}"
    blob = get_bucket().blob(object_name)
    blob.upload_from_string(file_bytes, content_type=content_type)
    blob.metadata = {"user_id": uid, "guide_number": guide_number or ""}
    blob.patch()
    return object_name

def get_signed_url(object_name: str, minutes: int = 60) -> str:
    blob = get_bucket().blob(object_name)
    return blob.generate_signed_url(expiration=minutes * 60)
