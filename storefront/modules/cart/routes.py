from __future__ import annotations

from flask import Blueprint, flash, redirect, render_template, request, session, url_for

from storefront.app.extensions import db
from storefront.app.models import CartItem, Product, Setting
from storefront.app.common.request_context import wants_json
from storefront.app.common.validation import clean_str, get_payload
from storefront.modules.cart.service import (
    COUPON_SESSION_KEY,
    active_promotion,
    cart_totals,
    clear_cart,
    find_cart,
    touch,
)
from storefront.modules.promotions.service import describe, validate_code

bp = Blueprint("cart", __name__)


def _respond(success: bool, message: str, status: int = 200, **extra):
    """JSON for XHR callers, flash + redirect back for form posts."""
    if wants_json():
        body = {"success": success, "message": message}
        body.update(extra)
        return body, status
    flash(message, "success" if success else "error")
    return redirect(request.referrer or url_for("cart.cart_page"))


def _cart_count() -> int:
    cart = find_cart()
    return cart.total_items if cart else 0


def _quantity(data) -> int | None:
    try:
        return int(data.get("quantity"))
    except (TypeError, ValueError):
        return None


@bp.get("/cart")
def cart_page():
    cart = find_cart()
    promotion = active_promotion()
    totals = cart_totals(cart, promotion)
    return render_template(
        "pages/cart.html",
        cart=cart,
        items=cart.items if cart else [],
        totals=totals,
        promotion=promotion,
        currency=Setting.get("default_currency"),
    )


@bp.post("/cart/add")
def add_to_cart():
    data = get_payload()
    qty = _quantity(data)
    try:
        product_id = int(data.get("product_id"))
    except (TypeError, ValueError):
        return _respond(False, "A valid product is required.", 422)
    if qty is None or qty < 1:
        return _respond(False, "Quantity must be at least 1.", 422)

    product = db.session.get(Product, product_id)
    if not product or not product.is_active:
        return _respond(False, "Product not found.", 404)
    if not product.in_stock or product.stock_qty < qty:
        return _respond(False, "Product is out of stock or insufficient quantity available.", 400)

    cart = find_cart(create=True)
    item = CartItem.query.filter_by(cart_id=cart.id, product_id=product.id).first()
    if item:
        new_qty = item.quantity + qty
        if new_qty > product.stock_qty:
            return _respond(False, "Cannot add more items. Stock limit exceeded.", 400)
        item.quantity = new_qty
        item.unit_price_cents = product.price_cents
    else:
        db.session.add(
            CartItem(
                cart_id=cart.id,
                product_id=product.id,
                quantity=qty,
                unit_price_cents=product.price_cents,
            )
        )

    touch(cart)
    db.session.commit()
    return _respond(True, "Product added to cart successfully.", cartCount=cart.total_items)


def _own_item(item_id: int) -> CartItem | None:
    cart = find_cart()
    if cart is None:
        return None
    return CartItem.query.filter_by(id=item_id, cart_id=cart.id).first()


@bp.route("/cart/items/<int:item_id>", methods=["PUT", "PATCH", "POST"])
def update_cart_item(item_id: int):
    if request.method == "POST" and request.form.get("_method", "").upper() == "DELETE":
        return remove_cart_item(item_id)

    data = get_payload()
    qty = _quantity(data)
    if qty is None or qty < 1:
        return _respond(False, "Quantity must be at least 1.", 422)

    item = _own_item(item_id)
    if not item:
        return _respond(False, "Cart item not found.", 404)

    if qty > item.product.stock_qty:
        return _respond(False, "Insufficient stock available.", 400, maxQuantity=item.product.stock_qty)

    item.quantity = qty
    touch(item.cart)
    db.session.commit()
    return _respond(True, "Cart updated successfully.", cartCount=_cart_count())


@bp.delete("/cart/items/<int:item_id>")
def remove_cart_item(item_id: int):
    item = _own_item(item_id)
    if not item:
        return _respond(False, "Cart item not found.", 404)

    cart = item.cart
    db.session.delete(item)
    touch(cart)
    db.session.commit()
    return _respond(True, "Item removed from cart.", cartCount=_cart_count())


@bp.route("/cart/clear", methods=["DELETE", "POST"])
def clear():
    cart = find_cart()
    clear_cart(cart)
    db.session.commit()
    return _respond(True, "Cart cleared successfully.", cartCount=0)


@bp.get("/cart/count")
def count():
    return {"count": _cart_count()}, 200


@bp.post("/cart/apply-coupon")
def apply_coupon():
    data = get_payload()
    code = clean_str(data.get("code")).upper()
    if not code:
        return _respond(False, "Coupon code is required.", 422)
    if len(code) > 50:
        return _respond(False, "Coupon code may not be longer than 50 characters.", 422)

    check = validate_code(code)
    if not check.valid:
        session.pop(COUPON_SESSION_KEY, None)
        return _respond(False, check.error, 422)

    session[COUPON_SESSION_KEY] = check.promotion.code
    totals = cart_totals(find_cart(), check.promotion)
    currency = Setting.get("default_currency")
    return _respond(
        True,
        f"Coupon {check.promotion.code} applied: {describe(check.promotion, currency)}.",
        code=check.promotion.code,
        totals=totals.to_dict(),
    )

