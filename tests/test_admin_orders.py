import json
from datetime import datetime

from storefront.app.extensions import db
from storefront.app.models import Account, Order

from conftest import login, login_admin, make_order

XHR = {"X-Requested-With": "XMLHttpRequest"}


def test_admin_pages_require_an_admin(client):
    r = client.get("/admin/orders")
    assert r.status_code == 302
    assert "/login" in r.headers["Location"]

    login(client)
    r = client.get("/admin/orders")
    assert r.status_code == 403
    assert b"Administrator access required" in r.data

    r = client.get("/admin/orders", headers=XHR)
    assert r.status_code == 403
    assert r.json["error"]["code"] == "forbidden"


def test_index_pagination_and_kpis(client):
    for n in range(17):
        make_order(order_number=f"ORD-2025-{n:06d}", payment_status="succeeded" if n < 2 else "pending")
    login_admin(client)

    r = client.get("/admin/orders", headers=XHR)
    assert r.status_code == 200
    meta = r.json["pagination"]
    assert meta == {"total": 17, "per_page": 15, "current_page": 1, "last_page": 2, "from": 1, "to": 15}
    assert len(r.json["orders"]) == 15
    assert r.json["kpis"]["today"]["orders"] == 17
    assert r.json["kpis"]["year"]["revenue_cents"] == 2 * 5998

    r = client.get("/admin/orders?page=2", headers=XHR)
    assert r.json["pagination"]["from"] == 16
    assert r.json["pagination"]["to"] == 17


def test_index_filters(client):
    make_order(order_number="ORD-2025-000001", status="pending", guest_email="first@example.com")
    make_order(order_number="ORD-2025-000002", status="shipped", guest_email="second@example.com")
    old = make_order(order_number="ORD-2024-000003", status="shipped", guest_email="old@example.com",
                     created_at=datetime(2024, 3, 1, 12, 0))
    account = Account.query.filter_by(email="test@test.com").first()
    make_order(order_number="ORD-2025-000004", account=account)
    login_admin(client)

    def numbers(query):
        r = client.get(f"/admin/orders?{query}", headers=XHR)
        return sorted(o["order_number"] for o in r.json["orders"])

    assert numbers("status=shipped") == ["ORD-2024-000003", "ORD-2025-000002"]
    assert numbers("search=second@") == ["ORD-2025-000002"]
    assert numbers("search=Test%20Customer") == ["ORD-2025-000004"]
    assert numbers("search=000001") == ["ORD-2025-000001"]
    assert numbers("date_to=2024-03-01") == [old.order_number]
    assert numbers("date_from=2024-03-02&status=shipped") == ["ORD-2025-000002"]

    r = client.get("/admin/orders?date_from=yesterday", headers=XHR)
    assert r.json["errors"] == ["Invalid date for date from: yesterday"]
    assert r.json["pagination"]["total"] == 4


def test_index_page_renders(client):
    make_order()
    login_admin(client)
    r = client.get("/admin/orders")
    assert r.status_code == 200
    assert b"ORD-2025-000001" in r.data


def test_show_and_edit_pages(client):
    order = make_order()
    login_admin(client)

    assert client.get(f"/admin/orders/{order.id}").status_code == 200
    r = client.get(f"/admin/orders/{order.id}/edit")
    assert r.status_code == 200
    assert b"order-items" in r.data
    assert client.get("/admin/orders/9999").status_code == 404


def update_payload(order, **overrides):
    data = {
        "status": "processing",
        "payment_status": "succeeded",
        "subtotal": "59.98",
        "shipping_amount": "0",
        "tax_amount": "0",
        "total_amount": "59.98",
        "notes": "Called customer",
        "tracking_number": "",
        "order_items": json.dumps([{"id": order.items[0].id, "quantity": 3, "price": 19.5, "total": 58.5}]),
        "billing_address": json.dumps(
            {"first_name": "Grace", "last_name": "Hopper", "address_line_1": "2 Navy Way",
             "city": "Arlington", "postal_code": "22202", "country": "us"}
        ),
        "shipping_address": "null",
    }
    data.update(overrides)
    return data


def test_update_order(client):
    order = make_order()
    other = make_order(order_number="ORD-2025-000099")
    foreign_item_id = other.items[0].id
    login_admin(client)

    data = update_payload(order)
    items = json.loads(data["order_items"]) + [{"id": foreign_item_id, "quantity": 9, "price": 1, "total": 9}]
    data["order_items"] = json.dumps(items)

    r = client.patch(f"/admin/orders/{order.id}", json=data)
    assert r.status_code == 200
    assert r.json["message"] == "Order updated successfully."

    db.session.expire_all()
    order = db.session.get(Order, order.id)
    assert order.status == "processing"
    assert order.payment_status == "succeeded"
    assert order.total_cents == 5998
    assert order.notes == "Called customer"
    assert order.items[0].quantity == 3
    assert order.items[0].unit_price_cents == 1950
    assert order.items[0].total_cents == 5850
    assert order.billing_address.address_line_1 == "2 Navy Way"
    assert order.billing_address.country == "US"
    assert order.shipping_address is None
    # items of other orders are ignored
    assert db.session.get(Order, other.id).items[0].quantity == 2


def test_update_creates_missing_shipping_address(client):
    order = make_order()
    login_admin(client)
    address = {"first_name": "Grace", "last_name": "Hopper", "address_line_1": "1 Navy Way",
               "city": "Arlington", "postal_code": "22202", "country": "US"}
    r = client.patch(f"/admin/orders/{order.id}", json=update_payload(order, shipping_address=json.dumps(address)))
    assert r.status_code == 200

    db.session.expire_all()
    assert db.session.get(Order, order.id).shipping_address.city == "Arlington"


def test_update_validation_messages(client):
    order = make_order()
    login_admin(client)

    def first_error(**overrides):
        r = client.patch(f"/admin/orders/{order.id}", json=update_payload(order, **overrides))
        assert r.status_code == 422
        return r.json["error"]["message"], r.json["error"]["details"]["errors"]

    assert first_error(status="")[0] == "Order status is required"
    assert first_error(payment_status="")[0] == "Payment status is required"
    assert first_error(status="lost")[0].startswith("Order status must be one of")
    assert first_error(order_items="[]")[0] == "At least one order item is required"
    assert first_error(order_items=json.dumps([{"id": 1, "quantity": 0, "price": 5}]))[0] == "Item 1: Quantity must be greater than 0"
    assert first_error(order_items=json.dumps([{"id": 1, "quantity": 1, "price": 0}]))[0] == "Item 1: Price must be greater than 0"
    assert first_error(billing_address=json.dumps({"last_name": "Hopper"}))[0] == "Billing address: first name is required"
    assert first_error(notes="x" * 1001)[0] == "Notes may not be longer than 1000 characters"
    assert first_error(tracking_number="x" * 101)[0] == "Tracking number may not be longer than 100 characters"
    assert first_error(total_amount="-1")[0] == "Total amount must be at least 0"
    assert first_error(subtotal="abc")[0] == "Subtotal must be a number"

    _, errors = first_error(status="", payment_status="")
    assert errors[:2] == ["Order status is required", "Payment status is required"]


def test_update_form_post_flashes_first_error(client):
    order = make_order()
    login_admin(client)

    r = client.post(f"/admin/orders/{order.id}", data=update_payload(order, status=""))
    assert r.status_code == 302
    assert r.headers["Location"].endswith(f"/admin/orders/{order.id}/edit")
    r = client.get(r.headers["Location"])
    assert b"Order status is required" in r.data


def test_status_and_bulk_status(client):
    a = make_order(order_number="ORD-2025-000001")
    b = make_order(order_number="ORD-2025-000002")
    login_admin(client)

    r = client.patch(f"/admin/orders/{a.id}/status", json={"status": "delivered"})
    assert r.status_code == 200
    r = client.patch(f"/admin/orders/{a.id}/status", json={"status": "lost"})
    assert r.status_code == 422

    r = client.patch("/admin/orders/bulk-status", json={"order_ids": [a.id, b.id], "status": "shipped"})
    assert r.status_code == 200
    assert r.json["message"] == "2 orders updated successfully."

    db.session.expire_all()
    assert {o.status for o in Order.query.all()} == {"shipped"}

    r = client.patch("/admin/orders/bulk-status", json={"order_ids": [a.id, 9999], "status": "pending"})
    assert r.status_code == 422
    assert r.json["error"]["message"] == "The selected order ids are invalid."


def test_cancel(client):
    order = make_order(status="processing")
    shipped = make_order(order_number="ORD-2025-000002", status="shipped")
    login_admin(client)

    r = client.patch(f"/admin/orders/{order.id}/cancel", json={})
    assert r.status_code == 200
    assert r.json["order"]["status"] == "cancelled"

    r = client.patch(f"/admin/orders/{shipped.id}/cancel", json={})
    assert r.status_code == 409
    assert r.json["error"]["message"] == "This order cannot be cancelled."


def test_refund_appends_note(client):
    order = make_order()
    login_admin(client)

    r = client.post(f"/admin/orders/{order.id}/refund", json={"amount": "100", "reason": "Too much"})
    assert r.status_code == 422

    r = client.post(f"/admin/orders/{order.id}/refund", json={"amount": "10", "reason": "Damaged box"})
    assert r.status_code == 200

    db.session.expire_all()
    notes = db.session.get(Order, order.id).notes
    assert notes.startswith("REFUND: €10.00 - Damaged box (Processed on ")

    client.post(f"/admin/orders/{order.id}/refund", json={})
    db.session.expire_all()
    notes = db.session.get(Order, order.id).notes
    assert "\n\nREFUND: €59.98 - Admin refund" in notes


def test_order_number_format(app):
    number = Order.generate_order_number()
    prefix, year, digits = number.split("-")
    assert prefix == "ORD"
    assert year == str(datetime.utcnow().year)
    assert len(digits) == 6 and digits.isdigit()


def test_update_amounts_and_prices_are_not_rounded_before_checks(client):
    order = make_order()
    login_admin(client)

    r = client.patch(f"/admin/orders/{order.id}", json=update_payload(order, shipping_amount="-0.004"))
    assert r.status_code == 422
    assert r.json["error"]["message"] == "Shipping amount must be at least 0"

    items = json.dumps([{"id": order.items[0].id, "quantity": 1, "price": "0.004"}])
    r = client.patch(f"/admin/orders/{order.id}", json=update_payload(order, order_items=items))
    assert r.status_code == 200


def test_refund_below_one_cent_is_rejected(client):
    order = make_order()
    login_admin(client)

    r = client.post(f"/admin/orders/{order.id}/refund", json={"amount": "0.005"})
    assert r.status_code == 422
    assert r.json["error"]["message"] == "Refund amount must be at least 0.01"
