from datetime import date
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..auth import get_current_user
from ..config import get_settings
from ..constants import ALL
from ..dependencies import get_dashboard_service
from ..errors import UpstreamFetchError
from ..services.dashboard import DashboardFilters, DashboardService

router = APIRouter()

def dashboard_filters(
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    origin: str = Query(ALL, alias="ubicacion"),
    destination: str = Query(ALL, alias="destino"),
    sub_destination: str = Query(ALL, alias="subDestino"),
) -> DashboardFilters:
    filters = DashboardFilters.default(tz=ZoneInfo(get_settings().timezone))
    if start_date is not None:
        filters.start_date = start_date
    if end_date is not None:
        filters.end_date = end_date
    if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="startDate is after endDate")
    filters.origin = origin or ALL
    filters.destination = destination or ALL
    filters.sub_destination = sub_destination or ALL
    return filters

@router.get("/dashboard/compare")
async def compare(
    filters: DashboardFilters = Depends(dashboard_filters),
    user=Depends(get_current_user),
    service: DashboardService = Depends(get_dashboard_service),
):
    try:
        result = await service.run(filters, user["uid"])
    except UpstreamFetchError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc
    return result.to_dict()
