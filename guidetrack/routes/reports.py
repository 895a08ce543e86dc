import asyncio
from datetime import tzinfo
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Response, status
from fastapi.responses import HTMLResponse

from ..auth import get_current_user
from ..constants import ALL
from ..dependencies import get_dashboard_service, get_display_zone, get_pdf_renderer
from ..errors import ReportRenderError, UpstreamFetchError
from ..services.dashboard import DashboardFilters, DashboardService
from ..services.firestore import get_route_highlight
from ..services.report import REPORT_FILENAME, PdfRenderer, build_report_payload, render_interval_report_html
from .dashboard import dashboard_filters

router = APIRouter()

def _pdf_response(pdf: bytes) -> Response:
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{REPORT_FILENAME}"'},
    )

def _require_intervals(payload: Dict[str, Any]) -> None:
    if not isinstance(payload.get("intervals"), list):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="El cuerpo debe incluir la lista de intervalos.",
        )

@router.post("/reports/intervals/html", response_class=HTMLResponse)
def interval_report_html(
    payload: Dict[str, Any] = Body(...),
    user=Depends(get_current_user),
    zone: tzinfo = Depends(get_display_zone),
):
    _require_intervals(payload)
    return render_interval_report_html(payload, zone)

@router.post("/reports/intervals/pdf")
async def interval_report_pdf(
    payload: Dict[str, Any] = Body(...),
    user=Depends(get_current_user),
    renderer: PdfRenderer = Depends(get_pdf_renderer),
    zone: tzinfo = Depends(get_display_zone),
):
    _require_intervals(payload)
    try:
        pdf = await renderer.render(render_interval_report_html(payload, zone))
    except ReportRenderError as exc:
        raise HTTPException(status_code=500, detail="No se pudo generar el PDF") from exc
    return _pdf_response(pdf)

@router.get("/reports/intervals")
async def interval_report_for_filters(
    filters: DashboardFilters = Depends(dashboard_filters),
    user=Depends(get_current_user),
    service: DashboardService = Depends(get_dashboard_service),
    renderer: PdfRenderer = Depends(get_pdf_renderer),
    zone: tzinfo = Depends(get_display_zone),
):
    """Compute the dashboard for the filters and print it, with the route highlight when one exists."""
    try:
        result = await service.run(filters, user["uid"])
    except UpstreamFetchError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc

    highlight = None
    if ALL not in (filters.destination, filters.origin):
        sub_destination = None if filters.sub_destination == ALL else filters.sub_destination
        highlight = await asyncio.to_thread(get_route_highlight, filters.destination, sub_destination, filters.origin)

    payload = build_report_payload(result, highlight)
    try:
        pdf = await renderer.render(render_interval_report_html(payload, zone))
    except ReportRenderError as exc:
        raise HTTPException(status_code=500, detail="No se pudo generar el PDF") from exc
    return _pdf_response(pdf)
