import asyncio
from datetime import datetime, timezone

import httpx

from toolcrib.config import settings
from toolcrib.models import Tool, Transaction, TransactionStatus, User
from toolcrib.services.report import (
    REPORT_FALLBACK,
    build_prompt,
    build_shift_data,
    generate_shift_report,
)

T0 = datetime(2026, 1, 12, 8, 30, tzinfo=timezone.utc)


def _data():
    users = [User(id="u1", name="João Silva", employee_id="E001")]
    tools = [
        Tool(id="t1", name="Chave Inglesa", code="CI-12"),
        Tool(id="t2", name="Multímetro", code="MD-01"),
    ]
    transactions = [
        Transaction(id="a", tool_id="t1", user_id="u1", checkout_time=T0),
        Transaction(id="b", tool_id="t2", user_id="gone", checkout_time=T0),
        Transaction(
            id="c",
            tool_id="t2",
            user_id="u1",
            checkout_time=T0,
            checkin_time=T0,
            status=TransactionStatus.returned,
        ),
    ]
    return build_shift_data(tools, users, transactions)


def test_build_shift_data():
    data = _data()
    assert data.total_tools == 2
    assert data.pending_count == 2
    assert data.returned_count == 1
    assert [(p.tool_code, p.user_name) for p in data.pending] == [("CI-12", "João Silva"), ("MD-01", "?")]


def test_build_prompt_lists_pending():
    prompt = build_prompt(_data(), language="English")
    assert "Total tools: 2" in prompt
    assert "Pending transactions (not returned): 2" in prompt
    assert "Chave Inglesa (CI-12) with user: João Silva" in prompt
    assert "2026-01-12 08:30:00" in prompt
    assert "in English" in prompt


def _run(handler):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await generate_shift_report(_data(), client=client)

    return asyncio.run(go())


def test_generate_without_key_uses_fallback(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", "")
    assert asyncio.run(generate_shift_report(_data())) == REPORT_FALLBACK


def test_generate_returns_model_text(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", "k")
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["key"] = request.headers["x-goog-api-key"]
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": "Turno tranquilo."}]}}]},
        )

    assert _run(handler) == "Turno tranquilo."
    assert seen["url"].endswith(f"/models/{settings.gemini_model}:generateContent")
    assert seen["key"] == "k"


def test_generate_falls_back_on_http_error(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", "k")
    assert _run(lambda request: httpx.Response(500, json={"error": "boom"})) == REPORT_FALLBACK


def test_generate_falls_back_on_bad_payload(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", "k")
    assert _run(lambda request: httpx.Response(200, json={"candidates": []})) == REPORT_FALLBACK
    assert _run(lambda request: httpx.Response(200, text="not json")) == REPORT_FALLBACK


def test_generate_falls_back_on_transport_error(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", "k")

    def handler(request):
        raise httpx.ConnectTimeout("timeout", request=request)

    assert _run(handler) == REPORT_FALLBACK
