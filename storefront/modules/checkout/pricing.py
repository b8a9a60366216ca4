"""Cart/order totals.

All amounts are integer cents. Tax rates are percentages (8.75 == 8.75%).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Iterable, Tuple

from storefront.app.common.money import round_cents, to_cents
from storefront.app.models import Setting


@dataclass(frozen=True)
class Totals:
    subtotal: int
    subtotal_excluding_tax: int
    discount: int
    tax: int
    tax_rate: Decimal
    shipping: int
    total: int
    quantity: int

    def to_dict(self) -> dict:
        data = asdict(self)
        data["tax_rate"] = float(self.tax_rate)
        return data


@dataclass(frozen=True)
class PricingRules:
    tax_rate: Decimal = Decimal("0")
    prices_include_tax: bool = False
    free_shipping_threshold: int = 10000
    flat_shipping: int = 1000

    @classmethod
    def from_settings(cls) -> "PricingRules":
        return cls(
            tax_rate=Decimal(Setting.get("tax_rate")),
            prices_include_tax=bool(Setting.get("prices_include_tax")),
            free_shipping_threshold=to_cents(Setting.get("free_shipping_threshold")),
            flat_shipping=to_cents(Setting.get("flat_shipping_amount")),
        )


def shipping_for(subtotal: int, quantity: int, rules: PricingRules) -> int:
    if quantity == 0 or subtotal >= rules.free_shipping_threshold:
        return 0
    return rules.flat_shipping


def calculate_totals(
    lines: Iterable[Tuple[int, int]],
    rules: PricingRules,
    discount: int = 0,
) -> Totals:
    """`lines` are (unit_price_cents, quantity) pairs."""
    subtotal = 0
    quantity = 0
    for unit_price, qty in lines:
        subtotal += unit_price * qty
        quantity += qty

    discount = max(0, min(discount, subtotal))
    taxable = subtotal - discount
    rate = rules.tax_rate / Decimal(100)

    if rules.prices_include_tax:
        tax = round_cents(Decimal(taxable) * rate / (1 + rate))
        subtotal_ex = round_cents(Decimal(subtotal) / (1 + rate))
    else:
        tax = round_cents(Decimal(taxable) * rate)
        subtotal_ex = subtotal

    shipping = shipping_for(subtotal, quantity, rules)
    total = taxable + shipping
    if not rules.prices_include_tax:
        total += tax

    return Totals(
        subtotal=subtotal,
        subtotal_excluding_tax=subtotal_ex,
        discount=discount,
        tax=tax,
        tax_rate=rules.tax_rate,
        shipping=shipping,
        total=total,
        quantity=quantity,
    )
