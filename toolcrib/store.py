"""
台账持久化：key-value 形式，一个集合一行（tf_users / tf_tools / tf_transactions），
value 是整份集合的 JSON。台账本身不碰存储，路由在每次变更后调用 save_ledger。
"""
import json
import logging
from typing import Optional, TypeVar

from sqlmodel import Session, SQLModel

from toolcrib.models import StoreEntry, Tool, Transaction, User, utcnow
from toolcrib.services.ledger import InventoryLedger, LedgerSnapshot

logger = logging.getLogger(__name__)

USERS_KEY = "tf_users"
TOOLS_KEY = "tf_tools"
TRANSACTIONS_KEY = "tf_transactions"

M = TypeVar("M", bound=SQLModel)


def demo_users() -> list[User]:
    return [
        User(id="1", name="João Silva", employee_id="E001", department="Mecânica"),
        User(id="2", name="Maria Souza", employee_id="E002", department="Elétrica"),
    ]


def demo_tools() -> list[Tool]:
    return [
        Tool(id="t1", name='Chave Inglesa 12"', code="CI-12", category="Manual"),
        Tool(id="t2", name="Multímetro Digital", code="MD-01", category="Elétrica"),
        Tool(id="t3", name="Parafusadeira Bosch", code="PB-22", category="Elétrica"),
    ]


def _read(session: Session, key: str, model: type[M]) -> Optional[list[M]]:
    entry = session.get(StoreEntry, key)
    if entry is None:
        return None
    return [model.model_validate(item) for item in json.loads(entry.value)]


def _write(session: Session, key: str, items: list[SQLModel]) -> None:
    value = json.dumps([item.model_dump(mode="json") for item in items], ensure_ascii=False)
    entry = session.get(StoreEntry, key)
    if entry is None:
        entry = StoreEntry(key=key, value=value)
    else:
        entry.value = value
        entry.updated_at = utcnow()
    session.add(entry)


def load_ledger(session: Session, seed_demo_data: bool = False) -> InventoryLedger:
    users = _read(session, USERS_KEY, User)
    tools = _read(session, TOOLS_KEY, Tool)
    transactions = _read(session, TRANSACTIONS_KEY, Transaction)

    # 首次启动：缺的集合按空处理，或者放演示数据
    if users is None:
        users = demo_users() if seed_demo_data else []
    if tools is None:
        tools = demo_tools() if seed_demo_data else []
    if transactions is None:
        transactions = []

    logger.info(
        "ledger loaded: %d users, %d tools, %d transactions",
        len(users),
        len(tools),
        len(transactions),
    )
    ledger = InventoryLedger(users, tools, transactions)

    for p in ledger.integrity_problems():
        logger.warning("integrity: %s", p)
    return ledger


def save_ledger(session: Session, snapshot: LedgerSnapshot) -> None:
    _write(session, USERS_KEY, snapshot.users)
    _write(session, TOOLS_KEY, snapshot.tools)
    _write(session, TRANSACTIONS_KEY, snapshot.transactions)
    session.commit()
