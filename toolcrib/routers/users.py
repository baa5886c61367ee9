from fastapi import APIRouter, Depends
from sqlmodel import Session

from toolcrib.db import get_session
from toolcrib.deps import get_ledger
from toolcrib.schemas import UserCreate, UserRead
from toolcrib.services.ledger import InventoryLedger
from toolcrib.store import save_ledger

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserRead)
def register_user(
    data: UserCreate,
    session: Session = Depends(get_session),
    ledger: InventoryLedger = Depends(get_ledger),
):
    with ledger.lock:
        user = ledger.register_user(data.name, data.employee_id, data.department)
        save_ledger(session, ledger.snapshot())
    return user


@router.get("", response_model=list[UserRead])
def list_users(ledger: InventoryLedger = Depends(get_ledger)):
    return ledger.users


@router.get("/{user_id}", response_model=UserRead)
def get_user(user_id: str, ledger: InventoryLedger = Depends(get_ledger)):
    return ledger.get_user(user_id)


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    session: Session = Depends(get_session),
    ledger: InventoryLedger = Depends(get_ledger),
):
    # 历史流水里的 user_id 不动
    with ledger.lock:
        ledger.remove_user(user_id)
        save_ledger(session, ledger.snapshot())
    return {"ok": True}
