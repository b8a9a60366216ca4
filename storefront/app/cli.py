from __future__ import annotations

import click
from flask import Blueprint, current_app
from werkzeug.security import generate_password_hash

from storefront.app.extensions import db
from storefront.app.models import Account, Category, Product, PromotionCode, Setting

cli_bp = Blueprint("cli", __name__)

CATEGORIES = [("Gift Boxes", "gift-boxes"), ("Baskets", "baskets"), ("Treats", "treats")]

PRODUCTS = [
    ("BOX-001", "classic-gift-box", "Classic Gift Box", "A sturdy keepsake box.", "gift-boxes", 2999, 100),
    ("BOX-002", "deluxe-gift-box", "Deluxe Gift Box", "Magnetic lid, ribbon included.", "gift-boxes", 5499, 40),
    ("BASK-001", "wicker-basket", "Wicker Basket", "Hand-woven wicker basket.", "baskets", 4999, 80),
    ("TREAT-001", "chocolate-assortment", "Chocolate Assortment", "Assorted chocolates.", "treats", 1299, 300),
    ("TREAT-002", "herbal-tea-sampler", "Herbal Tea Sampler", "Twelve loose-leaf teas.", "treats", 1850, 0),
]


@cli_bp.cli.command("init-db")
def init_db() -> None:
    """Create tables without migrations (dev/test databases)."""
    db.create_all()
    click.echo("Tables created.")


def seed_settings() -> None:
    site = current_app.config["SITE_NAME"]
    defaults = {
        "site_name": (site, "string"),
        "default_currency": (current_app.config["DEFAULT_CURRENCY"], "string"),
        "company_address": ("1 Market Street, Springfield", "string"),
        "contact_phone": ("555-0100", "string"),
        "contact_email": ("orders@example.com", "string"),
    }
    for key, (value, type_) in defaults.items():
        if Setting.query.filter_by(key=key).first() is None:
            Setting.set(key, value, type_)


@cli_bp.cli.command("seed")
@click.option("--admin-email", default="admin@example.com", show_default=True)
@click.option("--admin-password", default="Password123!", show_default=True)
def seed_data(admin_email: str, admin_password: str) -> None:
    """Seed minimal dev data.

    Safe to run multiple times; it will no-op if data exists.
    """
    if not Account.query.filter_by(email=admin_email).first():
        db.session.add(
            Account(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                first_name="Store",
                last_name="Admin",
                is_admin=True,
            )
        )

    if not Account.query.filter_by(email="user@example.com").first():
        db.session.add(
            Account(
                email="user@example.com",
                password_hash=generate_password_hash("Password123!"),
                first_name="Demo",
                last_name="User",
                phone_number="555-0101",
            )
        )

    if Category.query.count() == 0:
        db.session.add_all(Category(name=name, slug=slug) for name, slug in CATEGORIES)
        db.session.flush()

    if Product.query.count() == 0:
        by_slug = {c.slug: c for c in Category.query.all()}
        for sku, slug, name, description, category, price, stock in PRODUCTS:
            db.session.add(
                Product(
                    sku=sku,
                    slug=slug,
                    name=name,
                    description=description,
                    category=by_slug.get(category),
                    price_cents=price,
                    stock_qty=stock,
                )
            )

    if not PromotionCode.query.filter_by(code="WELCOME10").first():
        db.session.add(PromotionCode(code="WELCOME10", percent_off=10))

    seed_settings()
    db.session.commit()
    click.echo(f"Seed complete. Admin: {admin_email} / {admin_password}, customer: user@example.com / Password123!")
