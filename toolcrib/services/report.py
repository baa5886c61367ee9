"""
班次报告：把台账数据整理成只读的结构，交给外部文本生成服务（Gemini）写一段总结。
服务失败只返回兜底文案，台账状态不受影响。
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import httpx

from toolcrib.config import settings
from toolcrib.models import Tool, Transaction, TransactionStatus, User

logger = logging.getLogger(__name__)

REPORT_FALLBACK = (
    "Unable to generate the shift report right now. "
    "Please review the pending and returned lists manually."
)


@dataclass
class PendingItem:
    tool_name: str
    tool_code: str
    user_name: str
    checkout_time: datetime


@dataclass
class ShiftData:
    total_tools: int
    pending_count: int
    returned_count: int
    pending: list[PendingItem] = field(default_factory=list)


def build_shift_data(
    tools: list[Tool], users: list[User], transactions: list[Transaction]
) -> ShiftData:
    tools_by_id = {t.id: t for t in tools}
    users_by_id = {u.id: u for u in users}

    pending = [t for t in transactions if t.status == TransactionStatus.pending]
    returned_count = sum(1 for t in transactions if t.status == TransactionStatus.returned)

    items = []
    for txn in pending:
        tool = tools_by_id.get(txn.tool_id)
        user = users_by_id.get(txn.user_id)
        items.append(
            PendingItem(
                # 工具/人员被删了也照样列出来
                tool_name=tool.name if tool else "?",
                tool_code=tool.code if tool else txn.tool_id,
                user_name=user.name if user else "?",
                checkout_time=txn.checkout_time,
            )
        )

    return ShiftData(
        total_tools=len(tools),
        pending_count=len(pending),
        returned_count=returned_count,
        pending=items,
    )


def build_prompt(data: ShiftData, language: Optional[str] = None) -> str:
    language = language or settings.report_language
    lines = [
        "Analyse the following data from a work shift in a workshop and write a short, "
        f"professional report in {language}.",
        "",
        f"Total tools: {data.total_tools}",
        f"Pending transactions (not returned): {data.pending_count}",
        f"Completed transactions (returned): {data.returned_count}",
        "",
        "Pending details:",
    ]
    for item in data.pending:
        lines.append(
            f"- Tool: {item.tool_name} ({item.tool_code}) with user: {item.user_name} "
            f"(checked out at: {item.checkout_time:%Y-%m-%d %H:%M:%S})"
        )
    lines += [
        "",
        "Please provide:",
        "1. An executive summary of the inventory state at the end of the shift.",
        "2. Recommendations if there are many pending items.",
        "3. A professional, direct tone.",
    ]
    return "\n".join(lines)


def _extract_text(payload: dict) -> str:
    candidates = payload.get("candidates") or []
    if not candidates:
        raise ValueError("no candidates in response")
    parts = (candidates[0].get("content") or {}).get("parts") or []
    text = "".join(p.get("text", "") for p in parts).strip()
    if not text:
        raise ValueError("empty text in response")
    return text


async def generate_shift_report(
    data: ShiftData,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """调用 Gemini generateContent；任何失败都返回 REPORT_FALLBACK"""
    if not settings.gemini_api_key:
        logger.warning("gemini_api_key not configured, using fallback report")
        return REPORT_FALLBACK

    url = f"{settings.gemini_base_url}/models/{settings.gemini_model}:generateContent"
    body = {"contents": [{"parts": [{"text": build_prompt(data)}]}]}
    headers = {"x-goog-api-key": settings.gemini_api_key}

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=settings.report_timeout_seconds) as own:
                response = await own.post(url, json=body, headers=headers)
        else:
            response = await client.post(url, json=body, headers=headers)
        response.raise_for_status()
        return _extract_text(response.json())
    except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as e:
        logger.warning("shift report generation failed: %s: %s", type(e).__name__, e)
        return REPORT_FALLBACK
