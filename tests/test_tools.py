def test_create_tool_and_list(client):
    r = client.post("/tools", json={"name": "Martelete Combinado 800W", "code": "MC-08", "category": "Elétrica"})
    assert r.status_code == 200
    tool = r.json()
    assert tool["name"] == "Martelete Combinado 800W"
    assert tool["status"] == "available"
    assert tool["current_user_id"] is None

    r2 = client.get("/tools?limit=50&offset=0")
    assert r2.status_code == 200
    data = r2.json()
    # 演示数据 3 把 + 新建 1 把
    assert data["total"] == 4
    assert data["items"][-1]["id"] == tool["id"]


def test_create_tool_requires_code(client):
    r = client.post("/tools", json={"name": "Serra", "code": ""})
    assert r.status_code == 422
    assert r.json()["code"] == "VALIDATION_ERROR"

    r2 = client.post("/tools", json={"name": "   ", "code": "SR-1"})
    assert r2.status_code == 400
    assert r2.json()["detail"]["code"] == "BAD_REQUEST"


def test_list_tools_filter_and_sort(client):
    r = client.get("/tools", params={"q": "elétrica", "sort": "code_asc"})
    assert r.status_code == 200
    assert [t["code"] for t in r.json()["items"]] == ["MD-01", "PB-22"]

    client.post("/transactions/checkout", json={"tool_id": "t1", "user_id": "1"})
    r2 = client.get("/tools", params={"status": "checked_out"})
    assert [t["id"] for t in r2.json()["items"]] == ["t1"]

    r3 = client.get("/tools", params={"sort": "bogus"})
    assert r3.status_code == 422


def test_get_tool_with_holder(client):
    r = client.get("/tools/t2")
    assert r.status_code == 200
    assert r.json()["holder"] is None

    client.post("/transactions/checkout", json={"tool_id": "t2", "user_id": "2"})
    r2 = client.get("/tools/t2")
    assert r2.json()["status"] == "checked_out"
    assert r2.json()["holder"]["name"] == "Maria Souza"


def test_get_missing_tool(client):
    r = client.get("/tools/nope")
    assert r.status_code == 404
    assert r.json() == {"detail": {"code": "TOOL_NOT_FOUND", "message": "Tool not found: nope"}}


def test_maintenance_toggle(client):
    r = client.patch("/tools/t3/maintenance", json={"on": True})
    assert r.status_code == 200
    assert r.json()["status"] == "maintenance"

    r2 = client.post("/transactions/checkout", json={"tool_id": "t3", "user_id": "1"})
    assert r2.status_code == 409

    r3 = client.patch("/tools/t3/maintenance", json={"on": False})
    assert r3.json()["status"] == "available"


def test_maintenance_rejected_while_checked_out(client):
    client.post("/transactions/checkout", json={"tool_id": "t1", "user_id": "1"})
    r = client.patch("/tools/t1/maintenance", json={"on": True})
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "TOOL_CHECKED_OUT"


def test_delete_tool_keeps_history(client):
    client.post("/transactions/checkout", json={"tool_id": "t1", "user_id": "1"})

    r = client.delete("/tools/t1")
    assert r.status_code == 200
    assert client.get("/tools/t1").status_code == 404

    pending = client.get("/transactions/pending").json()
    assert [t["tool_id"] for t in pending] == ["t1"]

    assert client.delete("/tools/t1").status_code == 404


def test_export_tools_xlsx(client):
    r = client.get("/tools/export.xlsx")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert "tools.xlsx" in r.headers["content-disposition"]
    # xlsx 是 zip
    assert r.content[:2] == b"PK"
