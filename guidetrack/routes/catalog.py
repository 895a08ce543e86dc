from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from ..auth import get_current_user
from ..dependencies import get_catalog_cache
from ..errors import UpstreamFetchError
from ..services import firestore, transport_api
from ..services.cache import MemoryStore, cached

router = APIRouter()

class DestinationRequest(BaseModel):
    name: str
    subDestinations: List[str] = []

class NameRequest(BaseModel):
    name: str

def _require_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="name is empty")
    return name

# ===================== FIRESTORE CATALOGS =====================

@router.get("/catalog/destinations")
def list_destinations(user=Depends(get_current_user)):
    return {"destinations": firestore.list_destinations()}

@router.post("/catalog/destinations", status_code=status.HTTP_201_CREATED)
def create_destination(body: DestinationRequest, user=Depends(get_current_user)):
    return firestore.create_destination(_require_name(body.name), body.subDestinations)

@router.delete("/catalog/destinations/{destination_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_destination(destination_id: str, user=Depends(get_current_user)):
    firestore.delete_destination(destination_id)

@router.post("/catalog/destinations/{destination_id}/sub-destinations", status_code=status.HTTP_204_NO_CONTENT)
def add_sub_destination(destination_id: str, body: NameRequest, user=Depends(get_current_user)):
    firestore.add_sub_destination(destination_id, _require_name(body.name))

@router.delete("/catalog/destinations/{destination_id}/sub-destinations/{name}",
               status_code=status.HTTP_204_NO_CONTENT)
def remove_sub_destination(destination_id: str, name: str, user=Depends(get_current_user)):
    firestore.remove_sub_destination(destination_id, name)

@router.get("/catalog/locations")
def list_locations(user=Depends(get_current_user)):
    return {"locations": firestore.list_locations()}

@router.post("/catalog/locations", status_code=status.HTTP_201_CREATED)
def create_location(body: NameRequest, user=Depends(get_current_user)):
    return firestore.create_location(_require_name(body.name))

@router.delete("/catalog/locations/{location_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_location(location_id: str, user=Depends(get_current_user)):
    firestore.delete_location(location_id)

# ===================== TRANSPORT API PROXIES =====================

@router.get("/catalog/transport/destinos")
def transport_destinations(user=Depends(get_current_user), cache: MemoryStore = Depends(get_catalog_cache)):
    try:
        rows = cached(cache, "transport:destinos", transport_api.fetch_transport_destinations)
    except UpstreamFetchError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc
    return {"data": rows}

@router.get("/catalog/transport/ubicaciones")
def transport_locations(user=Depends(get_current_user), cache: MemoryStore = Depends(get_catalog_cache)):
    try:
        rows = cached(cache, "transport:ubicaciones", transport_api.fetch_transport_locations)
    except UpstreamFetchError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc
    return {"data": rows}

@router.get("/catalog/transport/guides/{guide}")
def transport_by_guide(guide: str, user=Depends(get_current_user)):
    guide = _require_name(guide)
    try:
        rows = transport_api.fetch_transport_by_guide(guide)
    except UpstreamFetchError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc
    return {"query": guide, "count": len(rows), "data": rows}
