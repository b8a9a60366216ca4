from __future__ import annotations

from flask import Blueprint

from storefront.app.models import Setting
from storefront.app.common.errors import abort_json
from storefront.app.common.validation import clean_str, get_payload
from storefront.modules.cart.service import cart_totals, find_cart
from storefront.modules.promotions.service import describe, validate_code

bp = Blueprint("promotions", __name__)


@bp.post("/promotion/validate")
def validate_promotion():
    data = get_payload()
    code = clean_str(data.get("code"))
    if not code:
        abort_json(422, "validation_error", "Coupon code is required.")

    check = validate_code(code)
    if not check.valid:
        return {"valid": False, "error": check.error}, 200

    totals = cart_totals(find_cart(), check.promotion)
    return {
        "valid": True,
        "code": check.promotion.code,
        "description": describe(check.promotion, Setting.get("default_currency")),
        "discount_cents": totals.discount,
        "totals": totals.to_dict(),
    }, 200
