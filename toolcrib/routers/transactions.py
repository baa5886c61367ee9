from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session
from datetime import datetime, date, timedelta, timezone

from toolcrib.db import get_session
from toolcrib.deps import get_ledger
from toolcrib.error import abort
from toolcrib.models import Transaction, TransactionStatus
from toolcrib.schemas import (
    CheckinRequest,
    CheckinResponse,
    CheckoutRequest,
    CheckoutResponse,
    TransactionListResponse,
    TransactionRead,
    TransactionSort,
)
from toolcrib.services.export import build_workbook, norm_dt, xlsx_response
from toolcrib.services.ledger import InventoryLedger, usage_duration
from toolcrib.store import save_ledger


def _get_zone(tz_str: Optional[str]) -> Optional[ZoneInfo]:
    if not tz_str:
        return None
    tz_str = tz_str.strip()
    if not tz_str:
        return None
    try:
        return ZoneInfo(tz_str)
    except (ZoneInfoNotFoundError, ValueError):
        abort(400, "BAD_REQUEST", f"tz 不合法：{tz_str}（例：America/Sao_Paulo / Asia/Shanghai / UTC）")


def _parse_dt_or_date(s: str, *, is_end: bool, assume_tz: Optional[ZoneInfo]) -> datetime:
    """
    支持:
      - "YYYY-MM-DD"
      - ISO datetime: "YYYY-MM-DDTHH:MM:SS", "YYYY-MM-DDTHH:MM:SSZ", "YYYY-MM-DDTHH:MM:SS-03:00"
    规则:
      - 日期: start=当地00:00:00, end=次日00:00:00 (左闭右开)
      - datetime: 原样解释
      - 若输入不带时区: 使用 assume_tz；若 assume_tz 也没有，则按 UTC
      - 返回带时区的 UTC（和台账里的时间一致）
    """
    s = (s or "").strip()
    if not s:
        abort(400, "BAD_REQUEST", "start/end 不能为空")

    # 1) 纯日期
    if len(s) == 10 and s[4] == "-" and s[7] == "-":
        try:
            d = date.fromisoformat(s)
        except ValueError:
            abort(400, "BAD_REQUEST", f"日期格式错误：{s}，应为 YYYY-MM-DD")

        local_dt = datetime(d.year, d.month, d.day)
        if is_end:
            local_dt = local_dt + timedelta(days=1)

        tz = assume_tz or timezone.utc
        return local_dt.replace(tzinfo=tz).astimezone(timezone.utc)

    # 2) datetime（兼容 Z）
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        abort(400, "BAD_REQUEST", f"时间格式错误：{s}，例：2026-01-12T08:30:00 或 2026-01-12T08:30:00Z")

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=assume_tz or timezone.utc)

    return dt.astimezone(timezone.utc)


def to_read(txn: Transaction) -> TransactionRead:
    return TransactionRead(**txn.model_dump(), duration_minutes=usage_duration(txn))


router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.post("/checkout", response_model=CheckoutResponse)
def checkout(
    data: CheckoutRequest,
    session: Session = Depends(get_session),
    ledger: InventoryLedger = Depends(get_ledger),
):
    # 变更和落盘放在同一把锁里，并发请求不会拿旧快照覆盖新数据
    with ledger.lock:
        txn, tool = ledger.checkout(data.tool_id, data.user_id)
        save_ledger(session, ledger.snapshot())
    return {"transaction": to_read(txn), "tool": tool.model_dump()}


@router.post("/checkin", response_model=CheckinResponse)
def checkin(
    data: CheckinRequest,
    session: Session = Depends(get_session),
    ledger: InventoryLedger = Depends(get_ledger),
):
    with ledger.lock:
        result = ledger.checkin(data.tool_id)
        # 没有要归还的也不算错，告诉调用方即可
        if not result.nothing_to_return or result.integrity_violation:
            save_ledger(session, ledger.snapshot())

    return {
        "tool": result.tool.model_dump(),
        "closed": [to_read(t) for t in result.closed],
        "code": "NOTHING_TO_RETURN" if result.nothing_to_return else "RETURNED",
        "integrity_violation": result.integrity_violation,
    }


def _filter_transactions(
    ledger: InventoryLedger,
    status: Optional[TransactionStatus],
    tool_id: Optional[str],
    user_id: Optional[str],
    tz: Optional[str],
    start: Optional[str],
    end: Optional[str],
) -> list[Transaction]:
    items = ledger.transactions

    if status is not None:
        items = [t for t in items if t.status == status]
    if tool_id:
        items = [t for t in items if t.tool_id == tool_id]
    if user_id:
        items = [t for t in items if t.user_id == user_id]

    zone = _get_zone(tz)
    start_dt = _parse_dt_or_date(start, is_end=False, assume_tz=zone) if start else None
    end_dt = _parse_dt_or_date(end, is_end=True, assume_tz=zone) if end else None

    if start_dt is not None and end_dt is not None and start_dt >= end_dt:
        abort(400, "BAD_REQUEST", "start 必须早于 end")

    if start_dt is not None:
        items = [t for t in items if t.checkout_time >= start_dt]
    if end_dt is not None:
        items = [t for t in items if t.checkout_time < end_dt]
    return items


@router.get("", response_model=TransactionListResponse)
def list_transactions(
    status: Optional[TransactionStatus] = Query(None, description="pending / returned（可选）"),
    tool_id: Optional[str] = Query(None, description="按工具过滤（可选）"),
    user_id: Optional[str] = Query(None, description="按借用人过滤（可选）"),
    tz: Optional[str] = Query(None, description="时区（可选）。若 start/end 不带时区则按该时区解释"),
    start: Optional[str] = Query(None, description="开始时间/日期。例：2026-01-12 或 2026-01-12T08:30:00"),
    end: Optional[str] = Query(None, description="结束时间/日期（左闭右开）"),
    sort: TransactionSort = Query(TransactionSort.checkout_asc, description="排序方式"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ledger: InventoryLedger = Depends(get_ledger),
):
    items = _filter_transactions(ledger, status, tool_id, user_id, tz, start, end)

    # 台账本身是按借出时间追加的，倒序直接翻过来
    if sort == TransactionSort.checkout_desc:
        items = list(reversed(items))

    return {
        "items": [to_read(t) for t in items[offset:offset + limit]],
        "total": len(items),
        "limit": limit,
        "offset": offset,
    }


@router.get("/pending", response_model=list[TransactionRead])
def list_pending(ledger: InventoryLedger = Depends(get_ledger)):
    return [to_read(t) for t in ledger.pending_transactions()]


@router.get("/returned", response_model=list[TransactionRead])
def list_returned(ledger: InventoryLedger = Depends(get_ledger)):
    return [to_read(t) for t in ledger.returned_transactions()]


@router.get("/export.xlsx")
def export_transactions_xlsx(
    status: Optional[TransactionStatus] = None,
    tz: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    ledger: InventoryLedger = Depends(get_ledger),
):
    items = _filter_transactions(ledger, status, None, None, tz, start, end)
    tools_by_id = {t.id: t for t in ledger.tools}
    users_by_id = {u.id: u for u in ledger.users}

    rows = []
    for t in items:
        tool = tools_by_id.get(t.tool_id)
        user = users_by_id.get(t.user_id)
        minutes = usage_duration(t)
        rows.append([
            tool.code if tool else t.tool_id,
            tool.name if tool else "",
            user.name if user else t.user_id,
            norm_dt(t.checkout_time),
            norm_dt(t.checkin_time),
            t.status.value,
            minutes if minutes is not None else "",
        ])

    content = build_workbook(
        title="Transactions",
        headers=["Tool code", "Tool", "User", "Checked out (UTC)", "Returned (UTC)", "Status", "Minutes"],
        rows=rows,
        widths=[12, 26, 22, 20, 20, 10, 10],
        table_name="TransactionsLedger",
        datetime_columns=(4, 5),
    )
    return xlsx_response(content, "transactions.xlsx")
