from fastapi import APIRouter, Depends

from toolcrib.deps import get_ledger
from toolcrib.routers.transactions import to_read
from toolcrib.schemas import LedgerSummary, ShiftReportResponse
from toolcrib.services.ledger import InventoryLedger
from toolcrib.services.report import build_shift_data, generate_shift_report

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/summary", response_model=LedgerSummary)
def summary(ledger: InventoryLedger = Depends(get_ledger)):
    return {
        "counts": ledger.availability_counts(),
        "users": len(ledger.users),
        "pending": [to_read(t) for t in ledger.pending_transactions()],
        "returned": [to_read(t) for t in ledger.returned_transactions()],
        "integrity_problems": ledger.integrity_problems(),
    }


@router.post("/shift", response_model=ShiftReportResponse)
async def shift_report(ledger: InventoryLedger = Depends(get_ledger)):
    # 先拿快照再调外部服务，慢也不会卡住台账
    snap = ledger.snapshot()
    data = build_shift_data(snap.tools, snap.users, snap.transactions)
    text = await generate_shift_report(data)
    return {
        "report": text,
        "total_tools": data.total_tools,
        "pending_count": data.pending_count,
        "returned_count": data.returned_count,
    }
