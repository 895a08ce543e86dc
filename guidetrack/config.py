from functools import lru_cache

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    project_id: str | None = None
    firebase_cert_path: str = "/secrets/firebase-service-account.json"
    firestore_users_collection: str = "users"
    firestore_guides_collection: str = "guideRecords"
    firestore_highlights_collection: str = "routeHighlights"
    firestore_destinations_collection: str = "destinations"
    firestore_locations_collection: str = "locations"
    storage_guides_bucket: str | None = None
    transport_api_base_url: str = ""
    transport_api_timeout: float = 15.0
    transport_api_retries: int = 2
    timezone: str = "America/Santiago"
    catalog_cache_seconds: int = 300
    reports_pdf_timeout_ms: int = 30000
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

@lru_cache
def get_settings() -> Settings:
    return Settings()
