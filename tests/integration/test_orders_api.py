import json

import pytest

pytestmark = pytest.mark.integration


@pytest.fixture
def orders(database):
    rows = [
        {
            "uid": "ORD-1",
            "cst_email": "reader@example.com",
            "cst_name": "Reader",
            "amount": 30.0,
            "status": "pending",
            "items": json.dumps([{"name": "Thoth Deck", "price": 30.0, "quantity": 1}]),
            "shipping_address": json.dumps({"city": "Lisbon"}),
            "created_at": "2026-01-01T10:00:00+00:00",
        },
        {
            "uid": "ORD-2",
            "cst_email": None,
            "amount": 12.0,
            "status": "shipped",
            "items": json.dumps([]),
            "created_at": "2026-02-01T10:00:00+00:00",
        },
    ]
    return [database.create(row, "orders") for row in rows]


def test_orders_are_admin_only(user_client, orders):
    assert user_client.get("/api/orders").status_code == 403
    assert user_client.delete(f"/api/orders/{orders[0]['id']}").status_code == 403


def test_list_newest_first(admin_client, orders):
    body = admin_client.get("/api/orders").json()
    assert body["total"] == 2
    assert [o["uid"] for o in body["data"]] == ["ORD-2", "ORD-1"]


def test_list_by_status(admin_client, orders):
    body = admin_client.get("/api/orders", params={"status": "Pending"}).json()
    assert [o["uid"] for o in body["data"]] == ["ORD-1"]


def test_get_order_decodes_json_fields(admin_client, orders):
    order = admin_client.get(f"/api/orders/{orders[0]['id']}").json()["data"]
    assert order["items"][0]["name"] == "Thoth Deck"
    assert order["shipping_address"] == {"city": "Lisbon"}
    missing = admin_client.get("/api/orders/ghost")
    assert missing.status_code == 404
    assert missing.json() == {"error": "Order not found"}


def test_update_status_and_tracking(admin_client, orders, database):
    resp = admin_client.patch(f"/api/orders/{orders[0]['id']}", json={"status": " SHIPPED ", "tracking": "CT123PT"})
    assert resp.json()["message"] == "Order updated successfully!"
    stored = database.read(orders[0]["id"], "orders")
    assert stored["status"] == "shipped"
    assert stored["tracking"] == "CT123PT"


def test_update_validation(admin_client, orders):
    bad = admin_client.patch(f"/api/orders/{orders[0]['id']}", json={"status": "lost"})
    assert bad.status_code == 400
    assert bad.json()["error"].startswith("Invalid status. Valid options: pending, paid")
    empty = admin_client.patch(f"/api/orders/{orders[0]['id']}", json={})
    assert empty.status_code == 400
    assert empty.json() == {"error": "No changes provided"}
    assert admin_client.patch("/api/orders/ghost", json={"status": "paid"}).status_code == 404


def test_delete_order(admin_client, orders, database):
    resp = admin_client.delete(f"/api/orders/{orders[1]['id']}")
    assert resp.json()["data"] == {"id": orders[1]["id"]}
    assert database.read(orders[1]["id"], "orders") is None
    assert admin_client.delete(f"/api/orders/{orders[1]['id']}").status_code == 404


def test_resend_confirmation(admin_client, orders, mailer):
    resp = admin_client.post(f"/api/orders/{orders[0]['id']}/resend-confirmation")
    assert resp.json() == {"success": True, "message": "Confirmation sent to reader@example.com"}
    details = mailer.sent[0]["details"]
    assert details["order_id"] == "ORD-1"
    assert details["order_date"] == "2026-01-01"
    assert details["total"] == "30.00"


def test_resend_confirmation_errors(admin_client, orders, mailer):
    no_email = admin_client.post(f"/api/orders/{orders[1]['id']}/resend-confirmation")
    assert no_email.status_code == 400
    assert no_email.json() == {"error": "Order has no customer email"}
    mailer.fail = True
    failed = admin_client.post(f"/api/orders/{orders[0]['id']}/resend-confirmation")
    assert failed.status_code == 502
    assert failed.json() == {"error": "Failed to send confirmation email"}
