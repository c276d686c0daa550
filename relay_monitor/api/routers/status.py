"""
状态视图 API

- GET /            HTML 表格（每个中继一行 + 合计行）
- GET /api/status  同一视图的 JSON
- GET /api/health  健康检查
"""

import html
from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from ...aggregation import format_bytes
from ...models import AggregatedView, HealthResponse
from ...service import RelayMonitorService
from ..dependencies import get_service

router = APIRouter(tags=["status"])

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<title>Syncthing Relay Status</title>
<style>
table {{
    border-collapse: collapse;
}}

table, th, td {{
   border: 1px solid black;
}}

tr.totals {{
    font-weight: bold;
}}
</style>
</head>
<body>
<p>{caption}</p>
<table>
<tr>{header}</tr>
{rows}
</table>
</body>
</html>
"""

HEADERS = (
    ["Relay URL", "Sessions", "Connections", "Bytes Proxied"]
    + ["10 s", "1 m", "5 m", "15 m", "30 m", "60 m"]
    + ["Provided by"]
)

# 错误信息跨越的数据列数（除 URL 外的所有列）
DATA_COLUMNS = len(HEADERS) - 1


def _cells(values: List[str]) -> str:
    return "".join(f"<td>{html.escape(v)}</td>" for v in values)


def render_html(view: AggregatedView) -> str:
    """把聚合视图渲染成 HTML 页面"""
    rows = []
    for relay in view.relays:
        url_cell = f"<td>{html.escape(relay.url)}</td>"
        if relay.error or relay.status is None:
            message = relay.error or "no data"
            rows.append(f'<tr>{url_cell}<td colspan="{DATA_COLUMNS}">{html.escape(message)}</td></tr>')
            continue

        status = relay.status
        values = [
            str(status.num_active_sessions),
            str(status.num_connections),
            format_bytes(relay.bytes_proxied),
        ] + [str(rate) for rate in status.rates] + [status.provided_by]
        rows.append(f"<tr>{url_cell}{_cells(values)}</tr>")

    totals = view.totals
    total_values = [
        "Totals",
        str(totals.num_active_sessions),
        str(totals.num_connections),
        format_bytes(totals.bytes_proxied),
    ] + [str(rate) for rate in totals.rates] + [""]
    rows.append(f'<tr class="totals">{_cells(total_values)}</tr>')

    if view.timestamp:
        caption = f"Snapshot {view.timestamp}, {len(view.relays)} relays"
    else:
        caption = "No data yet"

    return PAGE_TEMPLATE.format(
        caption=html.escape(caption),
        header="".join(f"<th>{html.escape(h)}</th>" for h in HEADERS),
        rows="\n".join(rows),
    )


@router.get("/", response_class=HTMLResponse)
async def status_page(service: RelayMonitorService = Depends(get_service)):
    """中继状态页面"""
    return HTMLResponse(render_html(service.render()))


@router.get("/api/status", response_model=AggregatedView)
async def status_json(service: RelayMonitorService = Depends(get_service)):
    """
    获取聚合视图

    bytes_proxied 为叠加重置偏移后的累计值；totals 为所有中继之和。
    """
    return service.render()


@router.get("/api/health", response_model=HealthResponse)
async def health(service: RelayMonitorService = Depends(get_service)):
    """健康检查"""
    return HealthResponse(
        status="ok",
        snapshots=service.store.count(),
        last_snapshot=service.store.latest_key()
    )
