import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional

from toolcrib.error import LedgerNotFoundError, LedgerValidationError
from toolcrib.models import (
    Tool,
    ToolStatus,
    Transaction,
    TransactionStatus,
    User,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass
class LedgerSnapshot:
    """三份集合的拷贝，交给持久化 / 报告使用"""

    users: list[User]
    tools: list[Tool]
    transactions: list[Transaction]


@dataclass
class CheckinResult:
    tool: Tool
    closed: list[Transaction] = field(default_factory=list)
    integrity_violation: bool = False

    @property
    def nothing_to_return(self) -> bool:
        return not self.closed


def _required(value: str, label: str) -> str:
    value_clean = (value or "").strip()
    if not value_clean:
        raise LedgerValidationError("BAD_REQUEST", f"{label} 不能为空")
    return value_clean


class InventoryLedger:
    """
    工具借还台账：Users / Tools / Transactions 三个集合 + 保持它们一致的操作。

    规则:
      - 工具 checked_out <=> current_user_id 有值 <=> 恰好一条 pending 流水
      - 所有变更先校验、再一次性替换集合（持锁），不会出现半截状态
      - 流水只追加、只关闭，不删除
    """

    def __init__(
        self,
        users: Iterable[User] = (),
        tools: Iterable[Tool] = (),
        transactions: Iterable[Transaction] = (),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._users: list[User] = list(users)
        self._tools: list[Tool] = list(tools)
        self._transactions: list[Transaction] = list(transactions)
        self._clock = clock
        # 同步路由跑在线程池里：单写者
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        """可重入：路由持有它做“变更 + 落盘”，台账内部再拿也不会死锁"""
        return self._lock

    # ------------------------------------------------------------------ lookup

    def _find_tool(self, tool_id: str) -> Optional[Tool]:
        return next((t for t in self._tools if t.id == tool_id), None)

    def _find_user(self, user_id: str) -> Optional[User]:
        return next((u for u in self._users if u.id == user_id), None)

    def _require_tool(self, tool_id: str) -> Tool:
        tool = self._find_tool(tool_id)
        if not tool:
            raise LedgerNotFoundError("TOOL_NOT_FOUND", f"Tool not found: {tool_id}")
        return tool

    def _require_user(self, user_id: str) -> User:
        user = self._find_user(user_id)
        if not user:
            raise LedgerNotFoundError("USER_NOT_FOUND", f"User not found: {user_id}")
        return user

    def _replace_tool(self, updated: Tool) -> list[Tool]:
        return [updated if t.id == updated.id else t for t in self._tools]

    def get_tool(self, tool_id: str) -> Tool:
        with self._lock:
            return self._require_tool(tool_id).model_copy()

    def get_user(self, user_id: str) -> User:
        with self._lock:
            return self._require_user(user_id).model_copy()

    @property
    def users(self) -> list[User]:
        with self._lock:
            return [u.model_copy() for u in self._users]

    @property
    def tools(self) -> list[Tool]:
        with self._lock:
            return [t.model_copy() for t in self._tools]

    @property
    def transactions(self) -> list[Transaction]:
        with self._lock:
            return [t.model_copy() for t in self._transactions]

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return LedgerSnapshot(
                users=[u.model_copy() for u in self._users],
                tools=[t.model_copy() for t in self._tools],
                transactions=[t.model_copy() for t in self._transactions],
            )

    # ---------------------------------------------------------- registration

    def register_user(self, name: str, employee_id: str, department: str = "") -> User:
        user = User(
            name=_required(name, "name"),
            employee_id=_required(employee_id, "employee_id"),
            department=(department or "").strip(),
            created_at=self._clock(),
        )
        with self._lock:
            self._users = [*self._users, user]
        logger.info("registered user %s (%s)", user.id, user.employee_id)
        return user.model_copy()

    def remove_user(self, user_id: str) -> User:
        # 不检查未归还的流水：历史里的 user_id 原样保留
        with self._lock:
            user = self._require_user(user_id)
            self._users = [u for u in self._users if u.id != user_id]
        logger.info("removed user %s", user_id)
        return user.model_copy()

    def register_tool(self, name: str, code: str, category: str = "") -> Tool:
        tool = Tool(
            name=_required(name, "name"),
            code=_required(code, "code"),
            category=(category or "").strip(),
        )
        with self._lock:
            self._tools = [*self._tools, tool]
        logger.info("registered tool %s (%s)", tool.id, tool.code)
        return tool.model_copy()

    def remove_tool(self, tool_id: str) -> Tool:
        with self._lock:
            tool = self._require_tool(tool_id)
            self._tools = [t for t in self._tools if t.id != tool_id]
        logger.info("removed tool %s (status=%s)", tool_id, tool.status.value)
        return tool.model_copy()

    def set_maintenance(self, tool_id: str, on: bool) -> Tool:
        """available <-> maintenance；借出中的工具不能动"""
        with self._lock:
            tool = self._require_tool(tool_id)
            if tool.status == ToolStatus.checked_out:
                raise LedgerValidationError(
                    "TOOL_CHECKED_OUT", f"工具 {tool.code} 借出中，请先归还", 409
                )
            target = ToolStatus.maintenance if on else ToolStatus.available
            if tool.status == target:
                return tool.model_copy()

            updated = tool.model_copy(update={"status": target, "current_user_id": None})
            self._tools = self._replace_tool(updated)
        logger.info("tool %s -> %s", tool_id, target.value)
        return updated.model_copy()

    # ------------------------------------------------------- checkout/checkin

    def checkout(self, tool_id: str, user_id: str) -> tuple[Transaction, Tool]:
        with self._lock:
            tool = self._require_tool(tool_id)
            self._require_user(user_id)

            if tool.status != ToolStatus.available:
                raise LedgerValidationError(
                    "TOOL_NOT_AVAILABLE",
                    f"工具 {tool.code} 当前状态为 {tool.status.value}，不能借出",
                    409,
                )

            # 状态是 available 但还挂着未关闭的流水（历史数据不一致）：先归还再借
            if any(
                t.tool_id == tool_id and t.status == TransactionStatus.pending
                for t in self._transactions
            ):
                raise LedgerValidationError(
                    "TOOL_HAS_OPEN_TRANSACTION",
                    f"工具 {tool.code} 还有未关闭的借用记录，请先归还",
                    409,
                )

            txn = Transaction(
                tool_id=tool_id,
                user_id=user_id,
                checkout_time=self._clock(),
                status=TransactionStatus.pending,
            )
            updated = tool.model_copy(
                update={"status": ToolStatus.checked_out, "current_user_id": user_id}
            )

            # 两个集合一起换
            self._tools = self._replace_tool(updated)
            self._transactions = [*self._transactions, txn]

        logger.info("checkout tool=%s user=%s txn=%s", tool_id, user_id, txn.id)
        return txn.model_copy(), updated.model_copy()

    def checkin(self, tool_id: str) -> CheckinResult:
        with self._lock:
            tool = self._require_tool(tool_id)
            now = self._clock()

            pending_ids = {
                t.id
                for t in self._transactions
                if t.tool_id == tool_id and t.status == TransactionStatus.pending
            }

            if not pending_ids:
                if tool.status != ToolStatus.checked_out:
                    logger.info("checkin tool=%s: nothing to return", tool_id)
                    return CheckinResult(tool=tool.model_copy())

                # 借出状态但没有打开的流水：把工具修回可用并报给操作员
                logger.warning(
                    "tool %s is checked_out without a pending transaction, resetting", tool_id
                )
                updated = tool.model_copy(
                    update={"status": ToolStatus.available, "current_user_id": None}
                )
                self._tools = self._replace_tool(updated)
                return CheckinResult(tool=updated.model_copy(), integrity_violation=True)

            closed: list[Transaction] = []
            transactions: list[Transaction] = []
            for t in self._transactions:
                if t.id in pending_ids:
                    t = t.model_copy(
                        update={"status": TransactionStatus.returned, "checkin_time": now}
                    )
                    closed.append(t)
                transactions.append(t)

            updated = tool.model_copy(
                update={"status": ToolStatus.available, "current_user_id": None}
            )
            self._tools = self._replace_tool(updated)
            self._transactions = transactions

        violation = len(closed) > 1
        if violation:
            logger.warning(
                "tool %s had %d pending transactions, closed all: %s",
                tool_id,
                len(closed),
                ", ".join(t.id for t in closed),
            )
        logger.info("checkin tool=%s closed=%d", tool_id, len(closed))
        return CheckinResult(
            tool=updated.model_copy(),
            closed=[t.model_copy() for t in closed],
            integrity_violation=violation,
        )

    # ----------------------------------------------------------------- views

    def availability_counts(self) -> dict[str, int]:
        with self._lock:
            counts = {status.value: 0 for status in ToolStatus}
            for t in self._tools:
                counts[t.status.value] += 1
            counts["total"] = len(self._tools)
        return counts

    def current_holder(self, tool_id: str) -> Optional[User]:
        with self._lock:
            tool = self._require_tool(tool_id)
            if tool.status != ToolStatus.checked_out or not tool.current_user_id:
                return None
            # 持有人可能已被删除
            user = self._find_user(tool.current_user_id)
            return user.model_copy() if user else None

    def pending_transactions(self) -> list[Transaction]:
        with self._lock:
            return [
                t.model_copy()
                for t in self._transactions
                if t.status == TransactionStatus.pending
            ]

    def returned_transactions(self) -> list[Transaction]:
        with self._lock:
            return [
                t.model_copy()
                for t in self._transactions
                if t.status == TransactionStatus.returned
            ]

    def usage_duration(self, txn: Transaction) -> Optional[int]:
        return usage_duration(txn)

    def integrity_problems(self) -> list[str]:
        problems: list[str] = []
        with self._lock:
            pending_by_tool: dict[str, int] = {}
            for t in self._transactions:
                if t.status == TransactionStatus.pending:
                    pending_by_tool[t.tool_id] = pending_by_tool.get(t.tool_id, 0) + 1

            for tool in self._tools:
                checked_out = tool.status == ToolStatus.checked_out
                pending = pending_by_tool.get(tool.id, 0)
                if checked_out != bool(tool.current_user_id):
                    problems.append(
                        f"tool {tool.id}: status={tool.status.value} current_user_id={tool.current_user_id}"
                    )
                if checked_out and pending != 1:
                    problems.append(f"tool {tool.id}: checked_out with {pending} pending transactions")
                if not checked_out and pending:
                    problems.append(
                        f"tool {tool.id}: status={tool.status.value} with {pending} pending transactions"
                    )
        return problems


def usage_duration(txn: Transaction) -> Optional[int]:
    """借用时长（整分钟，向零截断）；未归还返回 None"""
    if txn.status != TransactionStatus.returned or txn.checkin_time is None:
        return None
    seconds = (txn.checkin_time - txn.checkout_time).total_seconds()
    return int(seconds / 60)
