import os

# settings 在 import 时读取，先把环境准备好
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["SEED_DEMO_DATA"] = "true"
os.environ["GEMINI_API_KEY"] = ""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine
from sqlalchemy.pool import StaticPool

from toolcrib import db
from toolcrib.main import app
from toolcrib.services.ledger import InventoryLedger


class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 1, 12, 8, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def engine(monkeypatch):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    monkeypatch.setattr(db, "engine", engine)
    return engine


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(engine):
    # 每个用例一份新库 + 新台账（带演示数据 t1/t2/t3、用户 1/2）
    with TestClient(app) as c:
        yield c


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(clock):
    return InventoryLedger(clock=clock)


@pytest.fixture
def stocked(ledger):
    """一个人 + 两把工具"""
    user = ledger.register_user("João Silva", "E001", "Mecânica")
    drill = ledger.register_tool("Parafusadeira Bosch", "PB-22", "Elétrica")
    meter = ledger.register_tool("Multímetro Digital", "MD-01", "Elétrica")
    return ledger, user, drill, meter
