from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict

from storefront.app.extensions import db
from storefront.app.models import Account, Address, Cart, CartItem, CheckoutSession, Order, OrderItem, Setting
from storefront.app.common.validation import Errors, as_bool, clean_str, is_email
from storefront.modules.cart.service import cart_totals, clear_cart
from storefront.modules.promotions.service import find_code, redeem, validate_code

log = logging.getLogger(__name__)

REQUIRED_SHIPPING_FIELDS = (
    "first_name",
    "last_name",
    "address_line_1",
    "city",
    "state",
    "postal_code",
    "country",
)
ADDRESS_INPUT_FIELDS = (
    "first_name",
    "last_name",
    "company",
    "phone",
    "address_line_1",
    "address_line_2",
    "city",
    "state",
    "postal_code",
    "country",
)
MAX_NOTES = 1000


@dataclass
class CheckoutRequest:
    email: str
    phone: str
    shipping: Dict[str, str]
    billing: Dict[str, str]
    coupon_code: str
    order_notes: str


def _address_fields(raw: Any) -> Dict[str, str]:
    raw = raw if isinstance(raw, dict) else {}
    data = {f: clean_str(raw.get(f)) for f in ADDRESS_INPUT_FIELDS}
    data["country"] = data["country"].upper()
    return data


def parse_checkout(data: Dict[str, Any]) -> CheckoutRequest:
    """Validate the Details form payload.

    Messages come back in the order the form shows them; callers surface
    the first one.
    """
    errors = Errors()
    email = clean_str(data.get("email")).lower()
    shipping = _address_fields(data.get("shipping_address"))

    errors.check(bool(email), "Please provide a valid email address.")
    errors.check(
        all(shipping[f] for f in REQUIRED_SHIPPING_FIELDS),
        "Please fill in all required shipping address fields.",
    )
    if email:
        errors.check(is_email(email), "Please provide a valid email address.")
    if shipping["country"]:
        errors.check(
            len(shipping["country"]) == 2 and shipping["country"].isalpha(),
            "Country must be a 2-letter country code.",
        )

    same = data.get("billing_same_as_shipping")
    billing_raw = data.get("billing_address")
    if same is None:
        same = not billing_raw
    if as_bool(same):
        billing = dict(shipping)
    else:
        billing = _address_fields(billing_raw)
        errors.check(
            all(billing[f] for f in REQUIRED_SHIPPING_FIELDS if f != "state"),
            "Please fill in all required billing address fields.",
        )

    notes = clean_str(data.get("order_notes"))
    errors.check(len(notes) <= MAX_NOTES, f"Order notes may not be longer than {MAX_NOTES} characters.")

    coupon = clean_str(data.get("coupon_code")).upper()
    if coupon:
        check = validate_code(coupon)
        if not check.valid:
            errors.add(check.error)

    errors.raise_if_any()
    return CheckoutRequest(
        email=email,
        phone=clean_str(data.get("phone")) or shipping["phone"],
        shipping=shipping,
        billing=billing,
        coupon_code=coupon,
        order_notes=notes,
    )


def _address(fields: Dict[str, str], type_: str, email: str, account: Account | None) -> Address:
    return Address(
        account_id=account.id if account else None,
        type=type_,
        email=email,
        **{k: (v or None) for k, v in fields.items()},
    )


def check_stock(cart: Cart) -> None:
    errors = Errors()
    for item in cart.items:
        product = item.product
        if not product.is_active:
            errors.add(f"{product.name} is no longer available.")
        elif product.stock_qty < item.quantity:
            errors.add(f"Insufficient stock for {product.name}.")
    errors.raise_if_any(status_code=409)


def create_order(cart: Cart, req: CheckoutRequest, account: Account | None, guest_session_id: str | None) -> Order:
    """Snapshot the cart into a pending order. Caller commits."""
    promotion = find_code(req.coupon_code) if req.coupon_code else None
    totals = cart_totals(cart, promotion)

    shipping = _address(req.shipping, "shipping", req.email, account)
    billing = _address(req.billing, "billing", req.email, account)
    db.session.add_all([shipping, billing])

    order = Order(
        order_number=Order.generate_order_number(),
        account_id=account.id if account else None,
        guest_email=None if account else req.email,
        guest_phone=None if account else (req.phone or None),
        guest_session_id=None if account else guest_session_id,
        shipping_address=shipping,
        billing_address=billing,
        status="pending",
        payment_status="pending",
        payment_method="checkout",
        subtotal_cents=totals.subtotal,
        discount_cents=totals.discount,
        tax_cents=totals.tax,
        shipping_cents=totals.shipping,
        total_cents=totals.total,
        currency=Setting.get("default_currency"),
        notes=req.order_notes or None,
        promotion_code=promotion.code if promotion else None,
    )
    db.session.add(order)

    for item in cart.items:
        unit = item.product.price_cents
        order.items.append(
            OrderItem(
                product_id=item.product_id,
                product_name=item.product.name,
                quantity=item.quantity,
                unit_price_cents=unit,
                total_cents=unit * item.quantity,
            )
        )

    db.session.flush()
    log.info(
        "Order created order=%s account=%s guest=%s total=%s",
        order.order_number,
        order.account_id,
        order.guest_email,
        order.total_cents,
    )
    return order


def _cart_for_order(order: Order) -> Cart | None:
    if order.account_id:
        return Cart.query.filter_by(account_id=order.account_id).first()
    if order.guest_session_id:
        return Cart.query.filter_by(session_id=order.guest_session_id).first()
    return None


def complete_payment(cs: CheckoutSession) -> bool:
    """Apply a paid session to its order exactly once. Caller commits.

    Returns True when this call moved the order to `succeeded`.
    """
    order = cs.order
    if cs.payment_status != "paid" or cs.status == "expired":
        return False
    if order.payment_status in ("succeeded", "cancelled"):
        return False

    order.payment_status = "succeeded"
    if order.status == "pending":
        order.status = "processing"

    for item in order.items:
        if item.product is not None:
            item.product.stock_qty = max(0, item.product.stock_qty - item.quantity)

    if order.promotion_code:
        promotion = find_code(order.promotion_code)
        if promotion is not None:
            redeem(promotion)

    cart = _cart_for_order(order)
    clear_cart(cart)
    log.info("Payment succeeded order=%s session=%s", order.order_number, cs.id)
    return True


def cancel_payment(cs: CheckoutSession) -> bool:
    """Expire the session and cancel the order payment. Paid orders are left alone."""
    order = cs.order
    if order.payment_status == "succeeded":
        return False
    order.payment_status = "cancelled"
    cs.status = "expired"
    log.info("Checkout cancelled order=%s session=%s", order.order_number, cs.id)
    return True


def cart_has_items(cart: Cart | None) -> bool:
    if cart is None:
        return False
    return CartItem.query.filter_by(cart_id=cart.id).count() > 0
