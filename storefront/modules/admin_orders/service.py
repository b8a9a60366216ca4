"""Order back-office helpers: listing filters, KPIs, edit and ship forms.

Validation mirrors what the edit form checks before submitting, so the
same messages show up whether a check fails in the browser or here.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_

from storefront.app.extensions import db
from storefront.app.models import (
    Account,
    Address,
    Order,
    OrderItem,
    ORDER_STATUSES,
    PAYMENT_STATUSES,
    Setting,
)
from storefront.app.common.money import format_money, to_amount, to_cents, to_decimal
from storefront.app.common.validation import Errors, as_bool, clean_str, is_email

log = logging.getLogger(__name__)

MAX_NOTES = 1000
MAX_TRACKING = 100
MAX_REFUND_REASON = 500
AMOUNT_FIELDS = {
    "subtotal": "subtotal_cents",
    "shipping_amount": "shipping_cents",
    "tax_amount": "tax_cents",
    "total_amount": "total_cents",
}
REQUIRED_ADDRESS_FIELDS = (
    ("first_name", "first name"),
    ("last_name", "last name"),
    ("address_line_1", "address line 1"),
    ("city", "city"),
    ("postal_code", "postal code"),
    ("country", "country"),
)


# --- listing -------------------------------------------------------------


def _parse_day(value: str) -> Optional[date]:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


def filter_orders(args) -> tuple[Any, Dict[str, str], List[str]]:
    """Apply index filters. Returns (query, echoed filters, messages for bad input)."""
    query = Order.query.outerjoin(Account, Order.account_id == Account.id)
    filters: Dict[str, str] = {}
    problems: List[str] = []

    status = clean_str(args.get("status"))
    if status and status != "all":
        if status in ORDER_STATUSES:
            query = query.filter(Order.status == status)
            filters["status"] = status
        else:
            problems.append(f"Unknown order status: {status}")

    payment_status = clean_str(args.get("payment_status"))
    if payment_status and payment_status != "all":
        if payment_status in PAYMENT_STATUSES:
            query = query.filter(Order.payment_status == payment_status)
            filters["payment_status"] = payment_status
        else:
            problems.append(f"Unknown payment status: {payment_status}")

    search = clean_str(args.get("search"))
    if search:
        like = f"%{search}%"
        full_name = Account.first_name + " " + Account.last_name
        query = query.filter(
            or_(
                Order.order_number.ilike(like),
                Order.guest_email.ilike(like),
                Account.email.ilike(like),
                Account.first_name.ilike(like),
                Account.last_name.ilike(like),
                full_name.ilike(like),
            )
        )
        filters["search"] = search

    for key, op in (("date_from", "ge"), ("date_to", "lt")):
        raw = clean_str(args.get(key))
        if not raw:
            continue
        day = _parse_day(raw)
        if day is None:
            problems.append(f"Invalid date for {key.replace('_', ' ')}: {raw}")
            continue
        if op == "ge":
            query = query.filter(Order.created_at >= datetime.combine(day, time.min))
        else:
            query = query.filter(Order.created_at < datetime.combine(day + timedelta(days=1), time.min))
        filters[key] = raw

    return query.order_by(Order.created_at.desc(), Order.id.desc()), filters, problems


def pagination_meta(page) -> Dict[str, Any]:
    """Flask-SQLAlchemy Pagination -> the meta the index page shows."""
    total = page.total or 0
    return {
        "total": total,
        "per_page": page.per_page,
        "current_page": page.page,
        "last_page": max(page.pages, 1),
        "from": (page.page - 1) * page.per_page + 1 if total and page.items else None,
        "to": (page.page - 1) * page.per_page + len(page.items) if total and page.items else None,
    }


def _window(start: datetime) -> Dict[str, Any]:
    count = db.session.query(func.count(Order.id)).filter(Order.created_at >= start).scalar() or 0
    revenue = (
        db.session.query(func.coalesce(func.sum(Order.total_cents), 0))
        .filter(Order.created_at >= start, Order.payment_status == "succeeded")
        .scalar()
    )
    return {"orders": int(count), "revenue_cents": int(revenue or 0)}


def kpis(now: Optional[datetime] = None) -> Dict[str, Dict[str, Any]]:
    now = now or datetime.utcnow()
    today = datetime.combine(now.date(), time.min)
    return {
        "today": _window(today),
        "month": _window(today.replace(day=1)),
        "year": _window(today.replace(month=1, day=1)),
    }


# --- serialization -------------------------------------------------------


def item_to_dict(item: OrderItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "product_name": item.product_name,
        "quantity": item.quantity,
        "price": to_amount(item.unit_price_cents),
        "total": to_amount(item.total_cents),
    }


def order_to_dict(order: Order, with_items: bool = True) -> Dict[str, Any]:
    data = {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "payment_status": order.payment_status,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "is_guest": order.is_guest,
        "subtotal": to_amount(order.subtotal_cents),
        "discount_amount": to_amount(order.discount_cents),
        "tax_amount": to_amount(order.tax_cents),
        "shipping_amount": to_amount(order.shipping_cents),
        "total_amount": to_amount(order.total_cents),
        "formatted_total": format_money(order.total_cents, order.currency),
        "currency": order.currency,
        "notes": order.notes,
        "tracking_number": order.tracking_number,
        "promotion_code": order.promotion_code,
        "can_be_cancelled": order.can_be_cancelled,
        "total_items": order.total_items,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }
    if with_items:
        data["items"] = [item_to_dict(i) for i in order.items]
        data["billing_address"] = order.billing_address.to_dict() if order.billing_address else None
        data["shipping_address"] = order.shipping_address.to_dict() if order.shipping_address else None
    return data


# --- edit form -----------------------------------------------------------


@dataclass
class OrderUpdate:
    status: str
    payment_status: str
    amounts: Dict[str, int] = field(default_factory=dict)
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    items: Optional[List[Dict[str, Any]]] = None
    billing_address: Optional[Dict[str, str]] = None
    shipping_address: Optional[Dict[str, str]] = None
    touched: set = field(default_factory=set)


def _decode(value: Any, label: str, errors: Errors) -> Any:
    """Form posts carry nested structures as JSON strings."""
    if value is None or isinstance(value, (list, dict)):
        return value
    text = str(value).strip()
    if not text or text == "null":
        return None
    try:
        return json.loads(text)
    except ValueError:
        errors.add(f"{label} is not valid JSON")
        return None


def _positive_number(value: Any) -> bool:
    try:
        return to_decimal(value) > 0
    except ValueError:
        return False


def _check_address(raw: Any, label: str, errors: Errors) -> Optional[Dict[str, str]]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        errors.add(f"{label} address is invalid")
        return None
    data = {f: clean_str(raw.get(f)) for f in Address.FIELDS if f in raw}
    for key, name in REQUIRED_ADDRESS_FIELDS:
        errors.check(bool(clean_str(raw.get(key))), f"{label} address: {name} is required")
    if data.get("country"):
        data["country"] = data["country"].upper()
        errors.check(len(data["country"]) == 2, f"{label} address: country must be a 2-letter code")
    return data


def parse_order_update(data: Dict[str, Any]) -> OrderUpdate:
    errors = Errors()

    status = clean_str(data.get("status"))
    payment_status = clean_str(data.get("payment_status"))
    if errors.check(bool(status), "Order status is required"):
        errors.check(status in ORDER_STATUSES, f"Order status must be one of: {', '.join(ORDER_STATUSES)}")
    if errors.check(bool(payment_status), "Payment status is required"):
        errors.check(
            payment_status in PAYMENT_STATUSES,
            f"Payment status must be one of: {', '.join(PAYMENT_STATUSES)}",
        )

    update = OrderUpdate(status=status, payment_status=payment_status)

    for key, column in AMOUNT_FIELDS.items():
        if key not in data or clean_str(data.get(key)) == "":
            continue
        label = key.replace("_", " ").capitalize()
        try:
            amount = to_decimal(data[key])
        except ValueError:
            errors.add(f"{label} must be a number")
            continue
        if errors.check(amount >= 0, f"{label} must be at least 0"):
            update.amounts[column] = to_cents(amount)

    if "notes" in data:
        notes = clean_str(data.get("notes"))
        errors.check(len(notes) <= MAX_NOTES, f"Notes may not be longer than {MAX_NOTES} characters")
        update.notes = notes or None
        update.touched.add("notes")
    if "tracking_number" in data:
        tracking = clean_str(data.get("tracking_number"))
        errors.check(
            len(tracking) <= MAX_TRACKING,
            f"Tracking number may not be longer than {MAX_TRACKING} characters",
        )
        update.tracking_number = tracking or None
        update.touched.add("tracking_number")

    if "order_items" in data:
        items = _decode(data.get("order_items"), "Order items", errors)
        if not isinstance(items, list) or not items:
            errors.add("At least one order item is required")
        else:
            for n, item in enumerate(items, start=1):
                item = item if isinstance(item, dict) else {}
                try:
                    qty_ok = int(item.get("quantity") or 0) > 0
                except (TypeError, ValueError):
                    qty_ok = False
                errors.check(qty_ok, f"Item {n}: Quantity must be greater than 0")
                errors.check(_positive_number(item.get("price")), f"Item {n}: Price must be greater than 0")
            update.items = items

    for key, label in (("billing_address", "Billing"), ("shipping_address", "Shipping")):
        if key in data:
            parsed = _check_address(_decode(data.get(key), f"{label} address", errors), label, errors)
            setattr(update, key, parsed)

    errors.raise_if_any()
    return update


def _apply_address(order: Order, attr: str, fields: Dict[str, str]) -> None:
    address = getattr(order, attr)
    if address is None:
        address = Address(account_id=order.account_id, type=attr.split("_")[0])
        db.session.add(address)
        setattr(order, attr, address)
    for key, value in fields.items():
        setattr(address, key, value or None)


def apply_order_update(order: Order, update: OrderUpdate) -> None:
    """Write a validated update onto the order. Caller commits."""
    order.status = update.status
    order.payment_status = update.payment_status
    for column, cents in update.amounts.items():
        setattr(order, column, cents)
    if "notes" in update.touched:
        order.notes = update.notes
    if "tracking_number" in update.touched:
        order.tracking_number = update.tracking_number

    if update.items:
        owned = {i.id: i for i in order.items}
        for data in update.items:
            try:
                item = owned.get(int(data.get("id")))
            except (TypeError, ValueError):
                item = None
            if item is None:
                continue
            item.quantity = int(data["quantity"])
            item.unit_price_cents = to_cents(data["price"])
            if data.get("total") not in (None, ""):
                item.total_cents = to_cents(data["total"])
            else:
                item.total_cents = item.quantity * item.unit_price_cents

    if update.billing_address:
        _apply_address(order, "billing_address", update.billing_address)
    if update.shipping_address:
        _apply_address(order, "shipping_address", update.shipping_address)


def parse_refund(order: Order, data: Dict[str, Any]) -> tuple[int, str]:
    errors = Errors()
    amount = order.total_cents
    raw = data.get("amount")
    if raw not in (None, ""):
        try:
            value = to_decimal(raw)
        except ValueError:
            errors.add("Refund amount must be a number")
        else:
            amount = to_cents(value)
            errors.check(value >= Decimal("0.01"), "Refund amount must be at least 0.01")
            errors.check(
                value * 100 <= order.total_cents,
                f"Refund amount may not be greater than {to_amount(order.total_cents):.2f}",
            )
    reason = clean_str(data.get("reason")) or "Admin refund"
    errors.check(len(reason) <= MAX_REFUND_REASON, f"Reason may not be longer than {MAX_REFUND_REASON} characters")
    errors.raise_if_any()
    return amount, reason


def append_note(existing: Optional[str], block: str) -> str:
    return f"{existing}\n\n{block}" if existing else block


def refund_note(
    amount_cents: int,
    reason: str,
    currency: str = "EUR",
    when: Optional[datetime] = None,
) -> str:
    when = when or datetime.utcnow()
    return f"REFUND: {format_money(amount_cents, currency)} - {reason} (Processed on {when:%Y-%m-%d %H:%M:%S})"


# --- ship form -----------------------------------------------------------


def ship_defaults() -> Dict[str, str]:
    """Sender details prefilled from store settings."""
    return {
        "company_name": Setting.get("site_name"),
        "company_address": Setting.get("company_address"),
        "company_phone": Setting.get("contact_phone"),
        "company_email": Setting.get("contact_email"),
        "iban": Setting.get("company_iban"),
        "account_holder": Setting.get("company_account_holder"),
    }


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def parse_shipment(data: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    errors = Errors()
    sender = {k: clean_str(v) for k, v in _section(data, "sender_info").items()}
    box = {k: clean_str(v) for k, v in _section(data, "box_info").items()}
    extra = _section(data, "additional_settings")

    errors.check(bool(sender.get("company_name")), "Sender company name is required")
    errors.check(bool(sender.get("address")), "Sender address is required")
    errors.check(bool(sender.get("phone")), "Sender phone is required")
    if errors.check(bool(sender.get("email")), "Sender email is required"):
        errors.check(is_email(sender["email"]), "Sender email must be a valid email address")
    errors.check(len(sender.get("company_name", "")) <= 255, "Sender company name may not be longer than 255 characters")
    errors.check(len(sender.get("address", "")) <= 1000, "Sender address may not be longer than 1000 characters")
    errors.check(len(sender.get("phone", "")) <= 50, "Sender phone may not be longer than 50 characters")
    errors.check(len(sender.get("email", "")) <= 255, "Sender email may not be longer than 255 characters")

    for key in ("weight", "length", "width", "height"):
        _non_negative(box.get(key), f"Box {key}", errors)
    for key in ("tracking_number", "carrier", "service_type"):
        errors.check(
            len(box.get(key, "")) <= 100,
            f"Box {key.replace('_', ' ')} may not be longer than 100 characters",
        )

    additional = {
        "insurance_value": clean_str(extra.get("insurance_value")),
        "contrassegno_enabled": as_bool(extra.get("contrassegno_enabled")),
        "contrassegno_amount": clean_str(extra.get("contrassegno_amount")),
        "iban": clean_str(extra.get("iban")),
        "account_holder": clean_str(extra.get("account_holder")),
        "notes": clean_str(extra.get("notes")),
    }
    _non_negative(additional["insurance_value"], "Insurance value", errors)
    _non_negative(additional["contrassegno_amount"], "Cash on delivery amount", errors)
    errors.check(len(additional["iban"]) <= 50, "IBAN may not be longer than 50 characters")
    errors.check(
        len(additional["account_holder"]) <= 255,
        "Account holder may not be longer than 255 characters",
    )
    errors.check(len(additional["notes"]) <= 1000, "Additional notes may not be longer than 1000 characters")

    errors.raise_if_any()
    return {
        "sender_info": sender,
        "customer_info": _section(data, "customer_info"),
        "shipping_address": _section(data, "shipping_address"),
        "box_info": box,
        "additional_settings": additional,
    }


def _non_negative(value: Optional[str], label: str, errors: Errors) -> None:
    if not value:
        return
    try:
        ok = to_decimal(value) >= 0
    except ValueError:
        errors.add(f"{label} must be a number")
        return
    errors.check(ok, f"{label} must be at least 0")


def build_shipping_notes(
    existing: Optional[str],
    shipment: Dict[str, Dict[str, Any]],
    currency: str = "EUR",
    when: Optional[datetime] = None,
) -> str:
    when = when or datetime.utcnow()
    lines = ["=== SHIPPING INFORMATION ===", f"Shipped on: {when:%Y-%m-%d %H:%M:%S}"]

    sender = shipment.get("sender_info") or {}
    if sender:
        lines += [
            "",
            "Sender:",
            f"- Company: {sender.get('company_name') or 'N/A'}",
            f"- Address: {sender.get('address') or 'N/A'}",
            f"- Phone: {sender.get('phone') or 'N/A'}",
            f"- Email: {sender.get('email') or 'N/A'}",
        ]

    box = shipment.get("box_info") or {}
    if box:
        lines += ["", "Package Details:"]
        if box.get("weight"):
            lines.append(f"- Weight: {box['weight']} kg")
        if box.get("length"):
            lines.append(f"- Dimensions: {box['length']}x{box.get('width') or '0'}x{box.get('height') or '0'} cm")
        if box.get("carrier"):
            lines.append(f"- Carrier: {box['carrier']}")
        if box.get("service_type"):
            lines.append(f"- Service Type: {box['service_type']}")
        if box.get("tracking_number"):
            lines.append(f"- Tracking Number: {box['tracking_number']}")

    extra = shipment.get("additional_settings") or {}
    if extra.get("insurance_value"):
        lines += ["", f"Insurance: {format_money(to_cents(extra['insurance_value']), currency)}"]
    if extra.get("contrassegno_enabled"):
        lines += ["", "Contrassegno (COD): Enabled"]
        if extra.get("contrassegno_amount"):
            lines.append(f"- Amount: {format_money(to_cents(extra['contrassegno_amount']), currency)}")
        if extra.get("iban"):
            lines.append(f"- IBAN: {extra['iban']}")
        if extra.get("account_holder"):
            lines.append(f"- Account Holder: {extra['account_holder']}")
    if extra.get("notes"):
        lines += ["", f"Additional Notes: {extra['notes']}"]

    return append_note(existing, "\n".join(lines) + "\n")


def ship_order(order: Order, shipment: Dict[str, Dict[str, Any]]) -> None:
    """Caller commits."""
    order.status = "shipped"
    order.tracking_number = shipment["box_info"].get("tracking_number") or None
    order.notes = build_shipping_notes(order.notes, shipment, order.currency)
    log.info(
        "Order shipped order=%s tracking=%s carrier=%s",
        order.order_number,
        order.tracking_number,
        shipment["box_info"].get("carrier"),
    )
