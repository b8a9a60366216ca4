from __future__ import annotations

from functools import wraps

from flask import Blueprint, current_app, flash, redirect, render_template, request, url_for

from storefront.app.extensions import db
from storefront.app.models import Order, ORDER_STATUSES, PAYMENT_STATUSES
from storefront.app.common.auth import admin_required
from storefront.app.common.errors import ApiError, abort_json
from storefront.app.common.request_context import wants_json
from storefront.app.common.validation import Errors, clean_str, get_payload
from storefront.modules.admin_orders.service import (
    append_note,
    apply_order_update,
    filter_orders,
    kpis,
    order_to_dict,
    pagination_meta,
    parse_order_update,
    parse_refund,
    parse_shipment,
    refund_note,
    ship_defaults,
    ship_order,
)

bp = Blueprint("admin_orders", __name__)


def _get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        abort_json(404, "not_found", "Order not found")
    return order


def flash_errors(fn):
    """Form posts get the first validation message flashed and are sent back."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except ApiError as err:
            if wants_json() or err.status_code == 404:
                raise
            db.session.rollback()
            flash(err.messages[0], "error")
            fallback = (
                url_for("admin_orders.edit", order_id=kwargs["order_id"])
                if "order_id" in kwargs
                else url_for("admin_orders.index")
            )
            return redirect(request.referrer or fallback)

    return wrapper


def _done(message: str, order: Order | None = None, **extra):
    if wants_json():
        body = {"success": True, "message": message}
        if order is not None:
            body["order"] = order_to_dict(order)
        body.update(extra)
        return body, 200
    flash(message, "success")
    fallback = url_for("admin_orders.show", order_id=order.id) if order else url_for("admin_orders.index")
    return redirect(request.referrer or fallback)


def _status_arg(data) -> str:
    status = clean_str(data.get("status"))
    errors = Errors()
    if errors.check(bool(status), "Order status is required"):
        errors.check(status in ORDER_STATUSES, f"Order status must be one of: {', '.join(ORDER_STATUSES)}")
    errors.raise_if_any()
    return status


@bp.get("")
@admin_required
def index():
    query, filters, problems = filter_orders(request.args)
    for message in problems:
        flash(message, "error")

    page = query.paginate(
        page=request.args.get("page", 1, type=int),
        per_page=current_app.config["ADMIN_PER_PAGE"],
        error_out=False,
    )
    meta = pagination_meta(page)
    stats = kpis()

    if wants_json():
        return {
            "orders": [order_to_dict(o, with_items=False) for o in page.items],
            "pagination": meta,
            "kpis": stats,
            "filters": filters,
            "errors": problems,
        }, 200

    return render_template(
        "admin/orders/index.html",
        orders=page.items,
        page=page,
        pagination=meta,
        kpis=stats,
        filters=filters,
        statuses=ORDER_STATUSES,
        payment_statuses=PAYMENT_STATUSES,
    )


@bp.get("/<int:order_id>")
@admin_required
def show(order_id: int):
    order = _get_order(order_id)
    if wants_json():
        return {"order": order_to_dict(order)}, 200
    return render_template("admin/orders/show.html", order=order)


@bp.get("/<int:order_id>/edit")
@admin_required
def edit(order_id: int):
    order = _get_order(order_id)
    return render_template(
        "admin/orders/edit.html",
        order=order,
        order_data=order_to_dict(order),
        statuses=ORDER_STATUSES,
        payment_statuses=PAYMENT_STATUSES,
    )


@bp.route("/<int:order_id>", methods=["PATCH", "POST"])
@admin_required
@flash_errors
def update(order_id: int):
    order = _get_order(order_id)
    update = parse_order_update(get_payload())
    apply_order_update(order, update)
    db.session.commit()
    current_app.logger.info("Order updated order=%s status=%s", order.order_number, order.status)
    return _done("Order updated successfully.", order)


@bp.route("/<int:order_id>/status", methods=["PATCH", "POST"])
@admin_required
@flash_errors
def update_status(order_id: int):
    order = _get_order(order_id)
    order.status = _status_arg(get_payload())
    db.session.commit()
    current_app.logger.info("Order status changed order=%s status=%s", order.order_number, order.status)
    return _done("Order status updated successfully.", order)


@bp.route("/bulk-status", methods=["PATCH", "POST"])
@admin_required
@flash_errors
def bulk_status():
    data = get_payload()
    raw_ids = data.get("order_ids")
    if isinstance(raw_ids, str):
        raw_ids = [raw_ids]

    errors = Errors()
    ids: list[int] = []
    if errors.check(isinstance(raw_ids, list) and bool(raw_ids), "Select at least one order"):
        try:
            ids = sorted({int(i) for i in raw_ids})
        except (TypeError, ValueError):
            errors.add("The selected order ids are invalid.")
    errors.raise_if_any()
    status = _status_arg(data)

    orders = Order.query.filter(Order.id.in_(ids)).all()
    if len(orders) != len(ids):
        abort_json(422, "validation_error", "The selected order ids are invalid.", {"errors": ["The selected order ids are invalid."]})

    for order in orders:
        order.status = status
    db.session.commit()
    current_app.logger.info("Bulk status change status=%s orders=%s", status, ids)
    return _done(f"{len(orders)} orders updated successfully.", updated=len(orders))


@bp.route("/<int:order_id>/cancel", methods=["PATCH", "POST"])
@admin_required
@flash_errors
def cancel(order_id: int):
    order = _get_order(order_id)
    if not order.can_be_cancelled:
        abort_json(409, "conflict", "This order cannot be cancelled.")
    order.status = "cancelled"
    db.session.commit()
    current_app.logger.info("Order cancelled order=%s", order.order_number)
    return _done("Order cancelled successfully.", order)


@bp.post("/<int:order_id>/refund")
@admin_required
@flash_errors
def refund(order_id: int):
    order = _get_order(order_id)
    amount, reason = parse_refund(order, get_payload())
    order.notes = append_note(order.notes, refund_note(amount, reason, order.currency))
    db.session.commit()
    current_app.logger.info("Refund recorded order=%s amount=%s", order.order_number, amount)
    return _done("Refund processed successfully.", order)


@bp.get("/<int:order_id>/ship")
@admin_required
def ship_form(order_id: int):
    order = _get_order(order_id)
    return render_template("admin/orders/ship.html", order=order, settings=ship_defaults())


@bp.post("/<int:order_id>/ship")
@admin_required
@flash_errors
def ship(order_id: int):
    order = _get_order(order_id)
    shipment = parse_shipment(get_payload())
    ship_order(order, shipment)
    db.session.commit()

    message = "Order has been shipped successfully!"
    if wants_json():
        return {"success": True, "message": message, "order": order_to_dict(order)}, 200
    flash(message, "success")
    return redirect(url_for("admin_orders.show", order_id=order.id))
