import asyncio
import html
import logging
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, List, Mapping, Optional

from playwright.async_api import Browser, Error as PlaywrightError, async_playwright

from ..constants import ALL, INTERVAL_COLUMN_LABEL
from ..errors import ReportRenderError
from .dashboard import DashboardResult
from .formatting import (
    EMPTY,
    format_date_time,
    format_long_date,
    format_minutes,
    format_number,
    format_time,
    format_volume,
)
from .intervals import column_totals, interval_columns

logger = logging.getLogger(__name__)

REPORT_FILENAME = "intervalos-por-conductor.pdf"
MAX_INTERVAL_COLUMNS = 60

def _esc(value: Any) -> str:
    return html.escape("" if value is None else str(value), quote=True)

# ===================== PAYLOAD =====================

def _highlight_block(highlight: Optional[Mapping[str, Any]], filters: Mapping[str, Any]) -> Dict[str, Any]:
    if not highlight:
        return {"hasData": False}
    def pick(field: str, filter_key: str) -> Optional[str]:
        value = highlight.get(field) or filters.get(filter_key)
        return None if value == ALL else value

    destination = pick("destination", "destino")
    sub_destination = pick("subDestination", "subDestino")
    origin = pick("origin", "ubicacion")
    target = f"{destination} / {sub_destination}" if sub_destination else destination
    return {
        "hasData": bool(highlight.get("averageDistance") or highlight.get("routeConditions")),
        "label": f"{origin or ALL} → {target or ALL}",
        "averageDistance": highlight.get("averageDistance"),
        "routeConditions": highlight.get("routeConditions"),
    }

def build_report_payload(
    result: DashboardResult,
    highlight: Optional[Mapping[str, Any]] = None,
    generated_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    filters = result.filters.to_dict()
    columns = interval_columns(result.intervals)
    return {
        "filters": filters,
        "summary": {
            "totalConductors": len(result.intervals),
            "totalTransportedDay": sum(e.total_transported for e in result.intervals),
            "columns": columns,
            "maxIntervalColumns": len(columns),
            "intervalColumnTotals": column_totals(result.intervals),
            "highlight": _highlight_block(highlight, filters),
            "generatedAt": (generated_at or datetime.now(timezone.utc)).isoformat(),
        },
        "intervals": [entry.to_dict() for entry in result.intervals],
    }

# ===================== HTML =====================

_STYLES = """
* { box-sizing: border-box; }
body { font-family: 'Inter', 'Segoe UI', system-ui, sans-serif; margin: 0; padding: 24px 32px 48px; color: #1f2933; line-height: 1.4; }
h1 { margin: 0 0 4px; font-size: 22px; color: #111827; }
p { margin: 0; }
.report-header { border-bottom: 2px solid #e5e7eb; padding-bottom: 12px; margin-bottom: 16px; }
.meta-grid, .summary-grid { display: grid; grid-template-columns: repeat(auto-fit, minmax(180px, 1fr)); gap: 12px; margin-top: 12px; }
.summary-grid { margin-bottom: 16px; }
.label { font-size: 11px; letter-spacing: 0.04em; text-transform: uppercase; color: #6b7280; }
.value { font-size: 14px; font-weight: 600; color: #111827; }
.card { border: 1px solid #e5e7eb; border-radius: 12px; padding: 16px; background: #f5f7fb; }
.card-value { font-size: 20px; font-weight: 700; color: #111827; }
.highlight { border: 1px solid #dbeafe; border-radius: 16px; padding: 16px; background: #eff6ff; margin-bottom: 18px;
  display: grid; grid-template-columns: repeat(auto-fit, minmax(220px, 1fr)); gap: 12px; }
table { width: 100%; border-collapse: collapse; border: 1px solid #e5e7eb; }
thead { background: #f3f4f6; }
th, td { border: 1px solid #e5e7eb; padding: 10px; vertical-align: top; }
th { font-size: 12px; text-transform: uppercase; letter-spacing: 0.05em; color: #6b7280; text-align: left; }
.conductor-card { font-size: 12px; }
.conductor-name { font-weight: 700; font-size: 14px; color: #111827; }
.conductor-meta { color: #4b5563; font-size: 11px; margin-top: 2px; }
.interval-cell { font-size: 11px; display: flex; flex-direction: column; gap: 2px; min-height: 68px; }
.interval-title { font-weight: 700; font-size: 12px; }
.interval-meta { color: #4b5563; font-size: 10px; }
.interval-cell--closing { background: #fef3c7; border-radius: 6px; padding: 6px; }
.interval-cell--total { font-weight: 700; text-align: center; }
.interval-cell--empty { color: #c4c4c4; text-align: center; }
.totals-row td { background: #f9fafb; }
"""

def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}

def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default

def render_interval_cell(interval: Any, tz: Optional[tzinfo] = None) -> str:
    if not isinstance(interval, Mapping) or not interval:
        return f'<div class="interval-cell interval-cell--empty">{EMPTY}</div>'
    if interval.get("closing"):
        return (
            '<div class="interval-cell interval-cell--closing">'
            '<div class="interval-title">Cierre del día</div>'
            f'<div class="interval-meta">Guía {_esc(interval.get("guide") or "Sin número")}</div>'
            f'<div class="interval-meta">{format_date_time(interval.get("time"), tz)}</div>'
            "</div>"
        )
    return (
        '<div class="interval-cell">'
        f'<div class="interval-title">{format_minutes(interval.get("minutes"))}</div>'
        f'<div class="interval-meta">{_esc(interval.get("fromGuide") or EMPTY)} → {_esc(interval.get("toGuide") or EMPTY)}</div>'
        f'<div class="interval-meta">{format_time(interval.get("fromDate"), tz)}</div>'
        f'<div class="interval-meta">{format_time(interval.get("toDate"), tz)}</div>'
        "</div>"
    )

def _render_totals_by_type(totals: Any) -> str:
    if not isinstance(totals, list) or not totals:
        return EMPTY
    return " · ".join(
        f"{_esc(entry.get('type') or 'Sin tipo')}: {format_volume(entry.get('total'))}"
        for entry in totals
        if isinstance(entry, Mapping)
    ) or EMPTY

def _render_driver_row(entry: Mapping[str, Any], column_count: int, tz: Optional[tzinfo]) -> str:
    intervals = entry.get("intervals")
    if not isinstance(intervals, list):
        intervals = []
    cells = "".join(
        f"<td>{render_interval_cell(intervals[idx] if idx < len(intervals) else None, tz)}</td>"
        for idx in range(column_count)
    )
    capacity = entry.get("capacityLabel")
    capacity_line = f'<div class="conductor-meta">Capacidad: {_esc(capacity)}</div>' if capacity else ""
    return (
        "<tr><td><div class=\"conductor-card\">"
        f'<div class="conductor-name">{_esc(entry.get("conductor") or "Sin conductor")}</div>'
        f'<div class="conductor-meta">{_as_int(entry.get("receptions"))} recepción(es)</div>'
        f"{capacity_line}"
        f'<div class="conductor-meta">Total transportado: {format_volume(entry.get("totalTransported"))}</div>'
        f'<div class="conductor-meta">{_render_totals_by_type(entry.get("totalsByType"))}</div>'
        f"</div></td>{cells}</tr>"
    )

def _render_totals_row(summary: Mapping[str, Any], column_count: int) -> str:
    totals = summary.get("intervalColumnTotals")
    if not isinstance(totals, list) or not totals:
        return ""
    cells = "".join(
        '<td><div class="interval-cell interval-cell--total">'
        f"{format_volume(value) if isinstance(value, (int, float)) and value > 0 else EMPTY}</div></td>"
        for value in totals[:column_count]
    )
    return (
        '<tr class="totals-row"><td><div class="conductor-card">'
        '<div class="conductor-name">Total transportado en el día</div>'
        f'<div class="conductor-meta">{format_volume(summary.get("totalTransportedDay"))}</div>'
        f"</div></td>{cells}</tr>"
    )

def _render_highlight(highlight: Mapping[str, Any]) -> str:
    if not highlight.get("hasData"):
        return ""
    distance = highlight.get("averageDistance")
    return (
        '<section class="highlight">'
        f'<div><div class="label">Ruta</div><div class="value">{_esc(highlight.get("label") or "Origen/Destino no definido")}</div></div>'
        f'<div><div class="label">Distancia media</div><div class="value">{_esc(distance) + " km" if distance else EMPTY}</div></div>'
        f'<div><div class="label">Condiciones</div><div class="value">{_esc(highlight.get("routeConditions") or "Sin comentarios")}</div></div>'
        "</section>"
    )

def _report_columns(summary: Mapping[str, Any]) -> List[str]:
    columns = summary.get("columns")
    if isinstance(columns, list) and columns:
        return [str(column) for column in columns[:MAX_INTERVAL_COLUMNS]]
    count = min(max(_as_int(summary.get("maxIntervalColumns")), 0), MAX_INTERVAL_COLUMNS)
    return [INTERVAL_COLUMN_LABEL.format(index=idx + 1) for idx in range(count)]

def render_interval_report_html(data: Mapping[str, Any], tz: Optional[tzinfo] = None) -> str:
    """Self-contained HTML for the interval report.

    ``data`` may come straight from a client, so every field is type-checked
    and malformed parts render as empty cells. Times are shown in ``tz``.
    """
    data = _mapping(data)
    filters = _mapping(data.get("filters"))
    summary = _mapping(data.get("summary"))
    intervals = data.get("intervals") if isinstance(data.get("intervals"), list) else []
    columns = _report_columns(summary)
    generated_at = summary.get("generatedAt") or datetime.now(timezone.utc).isoformat()

    rows = "".join(_render_driver_row(entry, len(columns), tz) for entry in intervals if isinstance(entry, Mapping))
    if not rows:
        rows = '<tr><td colspan="100%" style="text-align:center; padding:24px;">No hay datos para mostrar.</td></tr>'
    header = "".join(f"<th>{_esc(column)}</th>" for column in columns)

    return f"""<!DOCTYPE html>
<html lang="es">
  <head>
    <meta charset="utf-8" />
    <title>Intervalos por conductor</title>
    <style>{_STYLES}</style>
  </head>
  <body>
    <section class="report-header">
      <h1>Intervalos por conductor</h1>
      <p>Reporte generado el {format_long_date(generated_at, tz)}</p>
      <div class="meta-grid">
        <div><div class="label">Rango analizado</div><div class="value">{_esc(filters.get("startDate") or EMPTY)} al {_esc(filters.get("endDate") or EMPTY)}</div></div>
        <div><div class="label">Origen seleccionado</div><div class="value">{_esc(filters.get("ubicacion") or ALL)}</div></div>
        <div><div class="label">Destino</div><div class="value">{_esc(filters.get("destino") or ALL)}</div></div>
        <div><div class="label">Subdestino</div><div class="value">{_esc(filters.get("subDestino") or ALL)}</div></div>
      </div>
    </section>
    <section class="summary-grid">
      <div class="card"><div class="label">Conductores analizados</div><div class="card-value">{_as_int(summary.get("totalConductors"))}</div></div>
      <div class="card"><div class="label">Volumen total (m³)</div><div class="card-value">{format_number(summary.get("totalTransportedDay"))}</div></div>
      <div class="card"><div class="label">Columnas de intervalos</div><div class="card-value">{len(columns)}</div></div>
    </section>
    {_render_highlight(_mapping(summary.get("highlight")))}
    <table>
      <thead><tr><th style="width: 180px">Conductor</th>{header}</tr></thead>
      <tbody>{rows}{_render_totals_row(summary, len(columns))}</tbody>
    </table>
  </body>
</html>
"""

# ===================== PDF =====================

class PdfRenderer:
    """Prints HTML with a shared headless Chromium, relaunched if it died."""

    def __init__(self, timeout_ms: int = 30000):
        self.timeout_ms = timeout_ms
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    async def _get_browser(self) -> Browser:
        async with self._lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser
            if self._browser is not None:
                logger.warning("Chromium disconnected, relaunching")
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=True,
                args=["--no-sandbox", "--disable-setuid-sandbox", "--font-render-hinting=none"],
            )
            return self._browser

    async def render(self, html_content: str) -> bytes:
        try:
            browser = await self._get_browser()
            page = await browser.new_page()
            try:
                await page.set_content(html_content, wait_until="networkidle", timeout=self.timeout_ms)
                return await page.pdf(
                    format="A4",
                    print_background=True,
                    margin={"top": "12mm", "bottom": "16mm", "left": "12mm", "right": "12mm"},
                )
            finally:
                await page.close()
        except PlaywrightError as exc:
            logger.error("PDF rendering failed: %s", exc)
            raise ReportRenderError(str(exc)) from exc

    async def close(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as exc:
                logger.warning("Error closing Chromium: %s", exc)
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
