from __future__ import annotations

import logging
import uuid
from datetime import datetime

from flask import session

from storefront.app.extensions import db
from storefront.app.models import Cart, CartItem
from storefront.modules.checkout.pricing import PricingRules, Totals, calculate_totals
from storefront.modules.promotions.service import discount_for, validate_code

log = logging.getLogger(__name__)

GUEST_SESSION_KEY = "guest_session_id"
COUPON_SESSION_KEY = "coupon_code"


def guest_session_id() -> str:
    sid = session.get(GUEST_SESSION_KEY)
    if not sid:
        sid = uuid.uuid4().hex
        session[GUEST_SESSION_KEY] = sid
    return sid


def find_cart(create: bool = False) -> Cart | None:
    """Cart of the signed-in account, or of the guest session."""
    uid = session.get("user_id")
    if uid:
        cart = Cart.query.filter_by(account_id=uid).first()
        if cart is None and create:
            cart = Cart(account_id=uid)
    else:
        sid = guest_session_id()
        cart = Cart.query.filter_by(session_id=sid).first()
        if cart is None and create:
            cart = Cart(session_id=sid)

    if cart is not None and cart.id is None:
        db.session.add(cart)
        db.session.flush()
    return cart


def touch(cart: Cart) -> None:
    cart.updated_at = datetime.utcnow()


def merge_guest_cart(account_id: int) -> None:
    """Fold the guest cart into the account cart after login."""
    sid = session.get(GUEST_SESSION_KEY)
    if not sid:
        return
    guest = Cart.query.filter_by(session_id=sid).first()
    if guest is None or not guest.items:
        return

    cart = Cart.query.filter_by(account_id=account_id).first()
    if cart is None:
        cart = Cart(account_id=account_id)
        db.session.add(cart)
        db.session.flush()

    for item in list(guest.items):
        existing = CartItem.query.filter_by(cart_id=cart.id, product_id=item.product_id).first()
        if existing:
            existing.quantity += item.quantity
            existing.unit_price_cents = item.unit_price_cents
        else:
            db.session.add(
                CartItem(
                    cart_id=cart.id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price_cents=item.unit_price_cents,
                )
            )

    log.info("Merged guest cart %s into account %s (%s lines)", guest.id, account_id, len(guest.items))
    db.session.delete(guest)
    touch(cart)
    db.session.commit()
    session.pop(GUEST_SESSION_KEY, None)


def clear_cart(cart: Cart | None) -> None:
    if cart is None:
        return
    CartItem.query.filter_by(cart_id=cart.id).delete()
    touch(cart)


def active_promotion():
    code = session.get(COUPON_SESSION_KEY)
    if not code:
        return None
    check = validate_code(code)
    if not check.valid:
        session.pop(COUPON_SESSION_KEY, None)
        return None
    return check.promotion


def cart_totals(cart: Cart | None, promotion=None) -> Totals:
    """Checkout totals priced from current product prices."""
    lines = []
    if cart is not None:
        lines = [(i.product.price_cents, i.quantity) for i in cart.items]
    subtotal = sum(p * q for p, q in lines)
    return calculate_totals(lines, PricingRules.from_settings(), discount_for(promotion, subtotal))
