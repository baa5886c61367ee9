from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from toolcrib.db import get_session
from toolcrib.deps import get_ledger
from toolcrib.models import ToolStatus
from toolcrib.schemas import (
    MaintenanceUpdate,
    ToolCreate,
    ToolDetail,
    ToolListResponse,
    ToolRead,
    ToolSort,
)
from toolcrib.services.export import build_workbook, norm_str, xlsx_response
from toolcrib.services.ledger import InventoryLedger
from toolcrib.store import save_ledger

router = APIRouter(prefix="/tools", tags=["tools"])

STATUS_LABELS = {
    ToolStatus.available: "Available",
    ToolStatus.checked_out: "In use",
    ToolStatus.maintenance: "Maintenance",
}


@router.post("", response_model=ToolRead)
def register_tool(
    data: ToolCreate,
    session: Session = Depends(get_session),
    ledger: InventoryLedger = Depends(get_ledger),
):
    with ledger.lock:
        tool = ledger.register_tool(data.name, data.code, data.category)
        save_ledger(session, ledger.snapshot())
    return tool


def _filter_tools(ledger: InventoryLedger, q: str | None, status: ToolStatus | None):
    tools = ledger.tools
    if q:
        needle = q.strip().lower()
        tools = [
            t
            for t in tools
            if needle in t.name.lower() or needle in t.code.lower() or needle in t.category.lower()
        ]
    if status is not None:
        tools = [t for t in tools if t.status == status]
    return tools


@router.get("", response_model=ToolListResponse)
def list_tools(
    q: str | None = None,
    status: Optional[ToolStatus] = Query(None, description="按状态过滤（可选）"),
    sort: Optional[ToolSort] = Query(None, description="排序（可选），默认按登记顺序"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ledger: InventoryLedger = Depends(get_ledger),
):
    tools = _filter_tools(ledger, q, status)

    order_map = {
        ToolSort.name_asc: (lambda t: t.name.lower(), False),
        ToolSort.name_desc: (lambda t: t.name.lower(), True),
        ToolSort.code_asc: (lambda t: t.code.lower(), False),
        ToolSort.code_desc: (lambda t: t.code.lower(), True),
        ToolSort.status: (lambda t: t.status.value, False),
    }
    if sort is not None:
        key, reverse = order_map[sort]
        tools = sorted(tools, key=key, reverse=reverse)

    return {
        "items": tools[offset:offset + limit],
        "total": len(tools),
        "limit": limit,
        "offset": offset,
        "q": q,
    }


@router.get("/export.xlsx")
def export_tools_xlsx(
    q: str | None = None,
    ledger: InventoryLedger = Depends(get_ledger),
):
    tools = _filter_tools(ledger, q, None)
    users_by_id = {u.id: u for u in ledger.users}

    rows = []
    for t in tools:
        holder = users_by_id.get(t.current_user_id) if t.current_user_id else None
        rows.append([
            norm_str(t.code),
            norm_str(t.name, "Unnamed"),
            norm_str(t.category),
            STATUS_LABELS[t.status],
            holder.name if holder else "",
        ])

    content = build_workbook(
        title="Tools",
        headers=["Code", "Name", "Category", "Status", "Holder"],
        rows=rows,
        widths=[12, 28, 16, 14, 24],
        table_name="ToolsLedger",
    )
    return xlsx_response(content, "tools.xlsx")


@router.get("/{tool_id}", response_model=ToolDetail)
def get_tool(tool_id: str, ledger: InventoryLedger = Depends(get_ledger)):
    tool = ledger.get_tool(tool_id)
    holder = ledger.current_holder(tool_id)
    return ToolDetail(**tool.model_dump(), holder=holder.model_dump() if holder else None)


@router.patch("/{tool_id}/maintenance", response_model=ToolRead)
def set_tool_maintenance(
    tool_id: str,
    body: MaintenanceUpdate,
    session: Session = Depends(get_session),
    ledger: InventoryLedger = Depends(get_ledger),
):
    with ledger.lock:
        tool = ledger.set_maintenance(tool_id, body.on)
        save_ledger(session, ledger.snapshot())
    return tool


@router.delete("/{tool_id}")
def delete_tool(
    tool_id: str,
    session: Session = Depends(get_session),
    ledger: InventoryLedger = Depends(get_ledger),
):
    # 不管状态都能删，流水保留
    with ledger.lock:
        ledger.remove_tool(tool_id)
        save_ledger(session, ledger.snapshot())
    return {"ok": True}
