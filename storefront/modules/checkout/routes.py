from __future__ import annotations

from flask import Blueprint, current_app, flash, redirect, render_template, request, url_for

from storefront.app.extensions import db
from storefront.app.models import Address
from storefront.app.common.auth import current_account, login_required
from storefront.app.common.errors import ApiError
from storefront.app.common.request_context import wants_json
from storefront.app.common.validation import get_payload
from storefront.modules.cart.service import active_promotion, cart_totals, find_cart, guest_session_id
from storefront.modules.checkout.gateway import get_gateway, with_session_placeholder
from storefront.modules.checkout.service import (
    cancel_payment,
    cart_has_items,
    check_stock,
    complete_payment,
    create_order,
    parse_checkout,
)

bp = Blueprint("checkout", __name__)

CANCELLED_MESSAGE = "Your payment was cancelled. You can try again anytime."


def _review_context():
    cart = find_cart()
    promotion = active_promotion()
    return {
        "cart": cart,
        "items": cart.items if cart else [],
        "totals": cart_totals(cart, promotion),
        "promotion": promotion,
    }


def _empty_cart_redirect():
    flash("Your cart is empty.", "info")
    return redirect(url_for("cart.cart_page"))


@bp.get("/checkout")
def index():
    account = current_account()
    if account is None:
        return redirect(url_for("checkout.guest_index"))

    ctx = _review_context()
    if not ctx["items"]:
        return _empty_cart_redirect()

    addresses = Address.query.filter_by(account_id=account.id).order_by(Address.is_default.desc(), Address.id).all()
    return render_template("checkout/index.html", account=account, addresses=addresses, **ctx)


@bp.get("/guest/checkout")
def guest_index():
    if current_account() is not None:
        return redirect(url_for("checkout.index"))

    ctx = _review_context()
    if not ctx["items"]:
        return _empty_cart_redirect()
    return render_template("checkout/guest_index.html", **ctx)


def _details_form(account) -> dict:
    form = {"email": "", "phone": "", "shipping_address": {}, "billing_same_as_shipping": True}
    if account is None:
        return form
    form["email"] = account.email
    form["phone"] = account.phone_number or ""
    default = (
        Address.query.filter_by(account_id=account.id, type="shipping")
        .order_by(Address.is_default.desc(), Address.id.desc())
        .first()
    )
    form["shipping_address"] = default.to_dict() if default else {
        "first_name": account.first_name,
        "last_name": account.last_name,
    }
    return form


def _render_details(guest: bool, form: dict, status: int = 200):
    ctx = _review_context()
    action = url_for("checkout.guest_create_session" if guest else "checkout.create_session")
    return render_template("checkout/details.html", guest=guest, form=form, action=action, **ctx), status


@bp.get("/checkout/details")
@login_required
def details():
    if not cart_has_items(find_cart()):
        return _empty_cart_redirect()
    return _render_details(False, _details_form(current_account()))


@bp.get("/guest/checkout/details")
def guest_details():
    if current_account() is not None:
        return redirect(url_for("checkout.details"))
    if not cart_has_items(find_cart()):
        return _empty_cart_redirect()
    return _render_details(True, _details_form(None))


def _start_checkout(guest: bool):
    data = get_payload()
    account = None if guest else current_account()
    cart = find_cart()

    try:
        if not cart_has_items(cart):
            raise ApiError(400, "empty_cart", "Cart is empty")
        req = parse_checkout(data)
        check_stock(cart)
    except ApiError as err:
        if wants_json():
            raise
        if err.code == "empty_cart":
            return _empty_cart_redirect()
        flash(err.messages[0], "error")
        return _render_details(guest, data, err.status_code)

    order = create_order(cart, req, account, None if account else guest_session_id())
    cs = get_gateway().create_session(
        order,
        success_url=with_session_placeholder("checkout.success"),
        cancel_url=with_session_placeholder("checkout.cancel"),
    )
    db.session.commit()
    current_app.logger.info("Checkout started order=%s session=%s", order.order_number, cs.id)

    if wants_json():
        return {"checkout_url": cs.url}, 200
    return redirect(cs.url)


@bp.post("/checkout/cart")
@bp.post("/checkout/session")
@login_required
def create_session():
    return _start_checkout(guest=False)


@bp.post("/guest/checkout/cart")
@bp.post("/guest/checkout/session")
def guest_create_session():
    if current_account() is not None:
        return _start_checkout(guest=False)
    return _start_checkout(guest=True)


@bp.get("/checkout/success")
def success():
    session_id = request.args.get("session_id")
    if not session_id:
        flash("Invalid checkout session", "error")
        return redirect(url_for("cart.cart_page"))

    cs = get_gateway().retrieve_session(session_id)
    if cs is None:
        flash("Order not found", "error")
        return redirect(url_for("cart.cart_page"))

    if cs.payment_status != "paid" or cs.status == "expired":
        return redirect(url_for("checkout.show", session_id=cs.id))

    if complete_payment(cs):
        db.session.commit()
    return render_template("checkout/success.html", order=cs.order, checkout_session=cs)


@bp.get("/checkout/cancel")
def cancel():
    order = None
    cs = get_gateway().retrieve_session(request.args.get("session_id", ""))
    if cs is not None:
        if not cancel_payment(cs):
            return redirect(url_for("checkout.success", session_id=cs.id))
        db.session.commit()
        order = cs.order
    return render_template("checkout/cancel.html", order=order, message=CANCELLED_MESSAGE)


@bp.get("/checkout/show")
def show():
    cs = get_gateway().retrieve_session(request.args.get("session_id", ""))
    if cs is None:
        flash("Order not found", "error")
        return redirect(url_for("cart.cart_page"))
    return render_template("checkout/show.html", checkout_session=cs, order=cs.order)
