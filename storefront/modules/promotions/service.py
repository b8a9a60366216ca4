from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from storefront.app.common.money import format_money, round_cents
from storefront.app.models import PromotionCode

log = logging.getLogger(__name__)


@dataclass
class PromotionCheck:
    valid: bool
    promotion: PromotionCode | None = None
    error: str | None = None


def find_code(code: str) -> PromotionCode | None:
    code = (code or "").strip().upper()
    if not code:
        return None
    return PromotionCode.query.filter_by(code=code).first()


def validate_code(code: str) -> PromotionCheck:
    promo = find_code(code)
    if promo is None or not promo.active:
        return PromotionCheck(False, error="Promotion code not found or inactive.")
    if promo.expires_at and promo.expires_at < datetime.utcnow():
        return PromotionCheck(False, error="Promotion code has expired.")
    if promo.max_redemptions and promo.times_redeemed >= promo.max_redemptions:
        return PromotionCheck(False, error="Promotion code usage limit exceeded.")
    return PromotionCheck(True, promotion=promo)


def discount_for(promo: PromotionCode | None, subtotal_cents: int) -> int:
    if promo is None:
        return 0
    if promo.amount_off_cents:
        return min(promo.amount_off_cents, subtotal_cents)
    if promo.percent_off:
        return round_cents(Decimal(subtotal_cents) * Decimal(promo.percent_off) / Decimal(100))
    return 0


def describe(promo: PromotionCode, currency: str) -> str:
    if promo.amount_off_cents:
        return f"{format_money(promo.amount_off_cents, currency)} off"
    if promo.percent_off:
        return f"{Decimal(promo.percent_off).normalize():f}% off"
    return ""


def redeem(promo: PromotionCode) -> None:
    promo.times_redeemed = (promo.times_redeemed or 0) + 1
    log.info("Promotion code redeemed code=%s times=%s", promo.code, promo.times_redeemed)
