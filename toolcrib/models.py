from enum import Enum
from typing import Optional
from datetime import datetime, timezone
from uuid import uuid4

from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class ToolStatus(str, Enum):
    available = "available"
    checked_out = "checked_out"
    maintenance = "maintenance"


class TransactionStatus(str, Enum):
    pending = "pending"
    returned = "returned"


# 台账里的三类数据只在内存里流转，不建表
class User(SQLModel):
    id: str = Field(default_factory=new_id)
    name: str
    employee_id: str
    department: str = ""
    created_at: datetime = Field(default_factory=utcnow)


class Tool(SQLModel):
    id: str = Field(default_factory=new_id)
    name: str
    code: str
    category: str = ""
    status: ToolStatus = ToolStatus.available
    current_user_id: Optional[str] = None  # 仅 checked_out 时有值


class Transaction(SQLModel):
    id: str = Field(default_factory=new_id)
    tool_id: str
    user_id: str
    checkout_time: datetime
    checkin_time: Optional[datetime] = None
    status: TransactionStatus = TransactionStatus.pending


# 持久化：一个集合一行，value 是整份 JSON
class StoreEntry(SQLModel, table=True):
    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=utcnow)
