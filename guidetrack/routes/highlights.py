from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from ..auth import get_current_user
from ..services.firestore import delete_route_highlight, get_route_highlight, save_route_highlight

router = APIRouter()

class RouteHighlightRequest(BaseModel):
    destination: str
    subDestination: str | None = None
    origin: str
    averageDistance: str | None = None
    routeConditions: str | None = None

@router.get("/route-highlights")
def read_highlight(
    destination: str = Query(..., alias="destino"),
    sub_destination: str | None = Query(None, alias="subDestino"),
    origin: str = Query(..., alias="ubicacion"),
    user=Depends(get_current_user),
):
    highlight = get_route_highlight(destination, sub_destination, origin)
    if highlight is None:
        raise HTTPException(status_code=404, detail="Route highlight not found")
    return highlight

@router.put("/route-highlights")
def write_highlight(body: RouteHighlightRequest, user=Depends(get_current_user)):
    if not body.averageDistance and not body.routeConditions:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="averageDistance or routeConditions is required",
        )
    return save_route_highlight(
        body.destination, body.subDestination, body.origin, body.averageDistance, body.routeConditions
    )

@router.delete("/route-highlights", status_code=status.HTTP_204_NO_CONTENT)
def remove_highlight(
    destination: str = Query(..., alias="destino"),
    sub_destination: str | None = Query(None, alias="subDestino"),
    origin: str = Query(..., alias="ubicacion"),
    user=Depends(get_current_user),
):
    delete_route_highlight(destination, sub_destination, origin)
