from decimal import Decimal

import pytest

from storefront.app.common.money import format_money, to_cents
from storefront.modules.checkout.pricing import PricingRules, calculate_totals, shipping_for


def test_exclusive_tax_adds_to_total():
    rules = PricingRules(tax_rate=Decimal("13"))
    t = calculate_totals([(2999, 2), (4999, 1)], rules)

    assert t.subtotal == 10997
    assert t.tax == 1430  # 13% of 109.97, rounded half up
    assert t.shipping == 0  # over the free shipping threshold
    assert t.total == 10997 + 1430
    assert t.quantity == 3


def test_inclusive_tax_is_extracted_from_prices():
    rules = PricingRules(tax_rate=Decimal("22"), prices_include_tax=True)
    t = calculate_totals([(12200, 1)], rules)

    assert t.tax == 2200
    assert t.subtotal_excluding_tax == 10000
    assert t.total == 12200


def test_flat_shipping_below_threshold():
    rules = PricingRules()
    t = calculate_totals([(2999, 1)], rules)
    assert t.shipping == 1000
    assert t.total == 3999


def test_empty_cart_ships_free():
    t = calculate_totals([], PricingRules())
    assert t.shipping == 0
    assert t.total == 0
    assert shipping_for(0, 0, PricingRules()) == 0


def test_discount_is_clamped_and_applied_before_tax():
    rules = PricingRules(tax_rate=Decimal("10"))
    t = calculate_totals([(1000, 1)], rules, discount=5000)
    assert t.discount == 1000
    assert t.tax == 0
    # shipping is still charged on the pre-discount subtotal
    assert t.total == 1000

    t = calculate_totals([(10000, 1)], rules, discount=1000)
    assert t.tax == 900
    assert t.total == 9000 + 900


def test_rules_read_from_settings(app):
    from storefront.app.models import Setting

    Setting.set("tax_rate", "8.5", "decimal")
    Setting.set("prices_include_tax", True, "boolean")
    Setting.set("free_shipping_threshold", "50", "decimal")

    rules = PricingRules.from_settings()
    assert rules.tax_rate == Decimal("8.5")
    assert rules.prices_include_tax is True
    assert rules.free_shipping_threshold == 5000
    assert rules.flat_shipping == 1000


@pytest.mark.parametrize("raw,cents", [("12.5", 1250), (12.345, 1235), ("0", 0), (Decimal("3.999"), 400)])
def test_to_cents(raw, cents):
    assert to_cents(raw) == cents


@pytest.mark.parametrize("raw", ["abc", "", None, True, "nan"])
def test_to_cents_rejects_garbage(raw):
    with pytest.raises(ValueError):
        to_cents(raw)


def test_format_money():
    assert format_money(123456, "EUR") == "€1,234.56"
    assert format_money(500, "CHF") == "5.00 CHF"
