import json
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from pos_service.clock import ManualClock
from pos_service.config import Settings
from pos_service.main import create_app

from conftest import FixedAllocator


def admin_id(client):
    users = client.get("/api/data").json()["users"]
    return next(u["id"] for u in users if u["role"] == "admin")


def cashier_id(client):
    users = client.get("/api/data").json()["users"]
    return next(u["id"] for u in users if u["role"] == "cashier")


def test_health(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "running" in r.json()["message"]


def test_submit_order(client, make_order):
    r = client.post("/api/orders", json=make_order(billNumber="TEMP-1700000000000123"))
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["billNumber"].isdigit()

    order = client.get(f"/api/orders/{body['id']}").json()
    assert order["billNumber"] == body["billNumber"]
    assert order["status"] == "completed"
    assert order["table_number"] == "5"


def test_same_order_twice_is_a_conflict_with_the_first_bill_number(client, clock, make_order):
    first = client.post("/api/orders", json=make_order()).json()
    clock.advance(60)
    r = client.post("/api/orders", json=make_order())
    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "Duplicate order"
    assert body["reason"] == "content match"
    assert body["existingBillNumber"] == first["billNumber"]
    assert len(client.get("/api/orders").json()) == 1


def test_same_order_after_the_window_is_accepted(client, clock, make_order):
    first = client.post("/api/orders", json=make_order()).json()
    clock.advance(301)
    r = client.post("/api/orders", json=make_order())
    assert r.status_code == 200
    assert r.json()["billNumber"] != first["billNumber"]


def test_retry_with_persisted_id_is_an_id_match(client, make_order):
    first = client.post("/api/orders", json=make_order()).json()
    r = client.post("/api/orders", json=make_order(id=first["id"], table_number="8"))
    assert r.status_code == 409
    assert r.json()["reason"] == "id match"
    assert r.json()["existingOrderId"] == first["id"]


def test_explicit_bill_number_collision(client, make_order):
    assert client.post("/api/orders", json=make_order(billNumber="B-77")).status_code == 200
    r = client.post("/api/orders", json=make_order(billNumber="B-77", table_number="6"))
    assert r.status_code == 409
    assert r.json()["reason"] == "explicit bill number collision"
    assert r.json()["existingBillNumber"] == "B-77"


def test_table_number_may_be_numeric(client, make_order):
    r = client.post("/api/orders", json=make_order(table_number=12))
    assert r.status_code == 200


def test_locks_are_released_on_every_exit(client, make_order):
    client.post("/api/orders", json=make_order())
    client.post("/api/orders", json=make_order())
    stats = client.get("/api/metrics/locks").json()
    assert stats["currentLocks"] == 0
    assert stats["totalLocksCreated"] == 2
    assert stats["totalLocksReleased"] == 2


def test_validation_happens_before_locking(client, make_order):
    bad = make_order()
    del bad["table_number"]
    assert client.post("/api/orders", json=bad).status_code == 422
    assert client.post("/api/orders", json=make_order(items=[])).status_code == 422
    assert client.post("/api/orders", json=make_order(table_number="  ")).status_code == 422
    assert client.post("/api/orders", json=make_order(total=60)).status_code == 422
    bad_line = make_order(items=[{"name": "Tea", "price": 25, "quantity": 2, "total": 70}])
    assert client.post("/api/orders", json=bad_line).status_code == 422
    assert client.get("/api/metrics/locks").json()["totalLocksCreated"] == 0


def test_allocation_exhaustion(settings, clock, make_order):
    allocator = FixedAllocator("555555555555", clock=clock)
    app = create_app(settings, clock=clock, allocator=allocator)
    with TestClient(app) as client:
        assert client.post("/api/orders", json=make_order()).status_code == 200
        r = client.post("/api/orders", json=make_order(table_number="2"))
        assert r.status_code == 500
        assert "unique bill number" in r.json()["error"]
        assert len(client.get("/api/orders").json()) == 1
        assert client.get("/api/metrics/locks").json()["currentLocks"] == 0


def test_status_updates(client, make_order):
    order_id = client.post("/api/orders", json=make_order()).json()["id"]
    r = client.put(f"/api/orders/{order_id}/status", json={"status": "completed"})
    assert r.status_code == 200
    r = client.put(f"/api/orders/{order_id}/status", json={"status": "pending"})
    assert r.status_code == 409
    assert client.put(f"/api/orders/{order_id}/status", json={"status": "done"}).status_code == 422
    assert client.put("/api/orders/9999/status", json={"status": "completed"}).status_code == 404


def test_delete_requires_admin(client, make_order):
    order_id = client.post("/api/orders", json=make_order()).json()["id"]
    assert client.delete(f"/api/orders/{order_id}").status_code == 403
    r = client.delete(f"/api/orders/{order_id}", headers={"X-User-Id": str(cashier_id(client))})
    assert r.status_code == 403

    headers = {"X-User-Id": str(admin_id(client))}
    assert client.delete(f"/api/orders/{order_id}", headers=headers).status_code == 200
    assert client.delete(f"/api/orders/{order_id}", headers=headers).status_code == 404


def test_consolidated_data(client, make_order):
    client.post("/api/orders", json=make_order())
    data = client.get("/api/data").json()
    assert data["restaurant"]["name"] == "PB's BHOJANALAY"
    assert all("password" not in u for u in data["users"])
    assert "Beverages" in data["menuCategories"]
    assert "Cash" in data["paymentModes"]
    assert len(data["menuItems"]) == 8
    assert data["qrConfig"]["upiId"] == "pbsbhojanalay@upi"
    [order] = data["orders"]
    assert {"id", "billNumber", "items", "status", "created_at"} <= set(order)
    assert order["items"][0]["name"] == "Tea"


def test_sales_summary(client, make_order):
    client.post("/api/orders", json=make_order())
    client.post("/api/orders", json=make_order(table_number="6"))
    summary = client.get("/api/sales-summary", params={"period": "today"}).json()
    assert summary["totalOrders"] == 2
    assert summary["totalSales"] == 105
    assert summary["totalTax"] == 5
    assert client.get("/api/sales-summary", params={"period": "month"}).json()["totalOrders"] == 2


def test_duplicate_detection_metrics(client, make_order):
    client.post("/api/orders", json=make_order())
    client.post("/api/orders", json=make_order())
    metrics = client.get("/api/metrics/duplicate-detection").json()
    assert metrics["totalChecks"] == 2
    assert metrics["totalDuplicatesFound"] == 1
    assert metrics["duplicatesByType"]["contentMatch"] == 1


def test_login(client):
    r = client.post("/api/auth/login", json={"username": "cashier1", "password": "cash123"})
    assert r.status_code == 200
    assert r.json()["role"] == "cashier"
    assert r.json()["last_login"] is not None
    r = client.post("/api/auth/login", json={"username": "cashier1", "password": "nope"})
    assert r.status_code == 401


def test_non_finite_amounts_are_rejected(client, make_order):
    def post_raw(order):
        # json.dumps writes Infinity/NaN literals, which the JSON body parser accepts
        return client.post("/api/orders", content=json.dumps(order), headers={"Content-Type": "application/json"})

    inf = float("inf")
    r = post_raw(make_order(subtotal=inf, tax_amount=0, total=inf))
    assert r.status_code == 422
    assert {e["loc"][-1] for e in r.json()["detail"]} >= {"subtotal", "total"}
    assert post_raw(make_order(total=inf)).status_code == 422
    assert post_raw(make_order(tax_amount=float("nan"))).status_code == 422
    bad_price = make_order(items=[{"name": "Tea", "price": inf, "quantity": 2, "total": inf}])
    assert post_raw(bad_price).status_code == 422

    assert client.get("/api/metrics/locks").json()["totalLocksCreated"] == 0
    assert client.get("/api/orders").json() == []
    assert client.get("/api/data").status_code == 200


def test_bill_date_and_sales_periods_follow_the_restaurant_zone(settings, make_order):
    # 2023-11-14 18:00 UTC is 23:30 in Kolkata
    clock = ManualClock(start=1_699_984_800, tz=ZoneInfo("Asia/Kolkata"))
    with TestClient(create_app(settings, clock=clock)) as client:
        late = client.post("/api/orders", json=make_order()).json()
        clock.advance(3600)  # 00:30 local, still 19:00 UTC on the 14th
        early = client.post("/api/orders", json=make_order(table_number="6")).json()

        assert client.get(f"/api/orders/{late['id']}").json()["date"] == "2023-11-14"
        assert client.get(f"/api/orders/{early['id']}").json()["date"] == "2023-11-15"

        assert client.get("/api/sales-summary", params={"period": "today"}).json()["totalOrders"] == 1
        assert client.get("/api/sales-summary", params={"period": "week"}).json()["totalOrders"] == 2


def test_restaurant_timezone_setting(db_url):
    assert Settings(database_url=db_url, restaurant_timezone="Asia/Kolkata").tzinfo == ZoneInfo("Asia/Kolkata")
    assert Settings(database_url=db_url, restaurant_timezone="").tzinfo is None
    with pytest.raises(ValidationError):
        Settings(database_url=db_url, restaurant_timezone="Mars/Olympus_Mons")
