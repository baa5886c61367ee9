from typing import Optional
from enum import Enum
from pydantic import BaseModel, Field
from datetime import datetime

from toolcrib.models import ToolStatus, TransactionStatus


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    employee_id: str = Field(..., min_length=1, max_length=50)
    department: str = ""


class UserRead(BaseModel):
    id: str
    name: str
    employee_id: str
    department: str
    created_at: datetime


class ToolCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=50)
    category: str = ""


class ToolRead(BaseModel):
    id: str
    name: str
    code: str
    category: str
    status: ToolStatus
    current_user_id: Optional[str] = None


class ToolDetail(ToolRead):
    holder: Optional[UserRead] = None


class ToolListResponse(BaseModel):
    items: list[ToolRead]
    total: int
    limit: int
    offset: int
    q: str | None = None


class ToolSort(str, Enum):
    name_asc = "name_asc"
    name_desc = "name_desc"
    code_asc = "code_asc"
    code_desc = "code_desc"
    status = "status"


class MaintenanceUpdate(BaseModel):
    on: bool = Field(..., description="true=送修，false=修好放回可用")


class CheckoutRequest(BaseModel):
    tool_id: str
    user_id: str


class CheckinRequest(BaseModel):
    tool_id: str


class TransactionRead(BaseModel):
    id: str
    tool_id: str
    user_id: str
    checkout_time: datetime
    checkin_time: Optional[datetime] = None
    status: TransactionStatus
    duration_minutes: Optional[int] = None


class CheckoutResponse(BaseModel):
    transaction: TransactionRead
    tool: ToolRead


class CheckinResponse(BaseModel):
    tool: ToolRead
    closed: list[TransactionRead]
    code: str = "RETURNED"  # RETURNED / NOTHING_TO_RETURN
    integrity_violation: bool = False


class TransactionSort(str, Enum):
    checkout_asc = "checkout_asc"
    checkout_desc = "checkout_desc"


class TransactionListResponse(BaseModel):
    items: list[TransactionRead]
    total: int
    limit: int
    offset: int


class AvailabilityCounts(BaseModel):
    available: int
    checked_out: int
    maintenance: int
    total: int


class LedgerSummary(BaseModel):
    counts: AvailabilityCounts
    users: int
    pending: list[TransactionRead]
    returned: list[TransactionRead]
    integrity_problems: list[str]


class ShiftReportResponse(BaseModel):
    report: str
    total_tools: int
    pending_count: int
    returned_count: int
