from __future__ import annotations

import json
import random
from datetime import datetime
from decimal import Decimal
from sqlalchemy import UniqueConstraint, Index

from storefront.app.extensions import db


ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")
PAYMENT_STATUSES = ("pending", "processing", "succeeded", "failed", "cancelled")
CANCELLABLE_STATUSES = ("pending", "processing")


class Account(db.Model):
    __tablename__ = "accounts"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    phone_number = db.Column(db.String(50), nullable=True)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    addresses = db.relationship("Address", backref="account", lazy=True, cascade="all, delete-orphan")
    orders = db.relationship("Order", backref="account", lazy=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Address(db.Model):
    __tablename__ = "addresses"

    # Fields the admin edit form and checkout may write
    FIELDS = (
        "first_name",
        "last_name",
        "company",
        "email",
        "phone",
        "address_line_1",
        "address_line_2",
        "city",
        "state",
        "postal_code",
        "country",
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    type = db.Column(db.String(20), nullable=False, default="shipping")  # billing | shipping
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    first_name = db.Column(db.String(255), nullable=False)
    last_name = db.Column(db.String(255), nullable=False)
    company = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    address_line_1 = db.Column(db.String(255), nullable=False)
    address_line_2 = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(100), nullable=False)
    state = db.Column(db.String(100), nullable=True)
    postal_code = db.Column(db.String(20), nullable=False)
    country = db.Column(db.String(2), nullable=False)

    def to_dict(self) -> dict:
        data = {"id": self.id, "type": self.type}
        data.update({f: getattr(self, f) for f in self.FIELDS})
        return data

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    slug = db.Column(db.String(120), nullable=False, unique=True)

    products = db.relationship("Product", back_populates="category")


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    slug = db.Column(db.String(255), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False)
    stock_qty = db.Column(db.Integer, nullable=False, default=0)
    image_url = db.Column(db.String(1024), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)
    category = db.relationship("Category", back_populates="products")

    @property
    def in_stock(self) -> bool:
        return self.is_active and self.stock_qty > 0


class Cart(db.Model):
    __tablename__ = "carts"

    id = db.Column(db.Integer, primary_key=True)
    # Exactly one of account_id / session_id is set
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, unique=True, index=True)
    session_id = db.Column(db.String(64), nullable=True, unique=True, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    items = db.relationship(
        "CartItem",
        backref="cart",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    @property
    def total_items(self) -> int:
        return sum(i.quantity for i in self.items)


class CartItem(db.Model):
    __tablename__ = "cart_items"

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("carts.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)  # snapshot at add time

    product = db.relationship("Product", lazy="joined")

    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", name="uq_cart_item_cart_product"),
        Index("ix_cart_items_cart", "cart_id"),
    )

    @property
    def total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


class PromotionCode(db.Model):
    __tablename__ = "promotion_codes"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), nullable=False, unique=True, index=True)
    amount_off_cents = db.Column(db.Integer, nullable=True)
    percent_off = db.Column(db.Numeric(5, 2), nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)
    expires_at = db.Column(db.DateTime, nullable=True)
    max_redemptions = db.Column(db.Integer, nullable=True)
    times_redeemed = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)

    guest_email = db.Column(db.String(255), nullable=True)
    guest_phone = db.Column(db.String(50), nullable=True)
    guest_session_id = db.Column(db.String(64), nullable=True, index=True)

    billing_address_id = db.Column(db.Integer, db.ForeignKey("addresses.id"), nullable=True)
    shipping_address_id = db.Column(db.Integer, db.ForeignKey("addresses.id"), nullable=True)

    status = db.Column(db.String(20), nullable=False, default="pending")
    payment_status = db.Column(db.String(20), nullable=False, default="pending")
    payment_method = db.Column(db.String(50), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="EUR")

    notes = db.Column(db.Text, nullable=True)
    tracking_number = db.Column(db.String(100), nullable=True)
    promotion_code = db.Column(db.String(50), nullable=True)
    checkout_session_id = db.Column(db.String(64), nullable=True, unique=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    billing_address = db.relationship("Address", foreign_keys=[billing_address_id])
    shipping_address = db.relationship("Address", foreign_keys=[shipping_address_id])

    @staticmethod
    def generate_order_number() -> str:
        year = datetime.utcnow().year
        while True:
            number = f"ORD-{year}-{random.randint(1, 999999):06d}"
            if not Order.query.filter_by(order_number=number).first():
                return number

    @property
    def is_guest(self) -> bool:
        return self.account_id is None and self.guest_email is not None

    @property
    def customer_email(self) -> str | None:
        if self.account_id:
            return self.account.email
        return self.guest_email

    @property
    def customer_name(self) -> str | None:
        if self.account_id:
            return self.account.full_name
        if self.billing_address:
            return self.billing_address.full_name
        return None

    @property
    def can_be_cancelled(self) -> bool:
        return self.status in CANCELLABLE_STATUSES

    @property
    def total_items(self) -> int:
        return sum(i.quantity for i in self.items)


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    # Kept nullable so history survives product deletion
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product", lazy="joined")

    __table_args__ = (
        Index("ix_order_items_order", "order_id"),
    )


class CheckoutSession(db.Model):
    __tablename__ = "checkout_sessions"

    id = db.Column(db.String(64), primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="open")  # open | complete | expired
    payment_status = db.Column(db.String(20), nullable=False, default="unpaid")  # unpaid | paid
    amount_total_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    url = db.Column(db.String(1024), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    order = db.relationship("Order", lazy="joined")


class Setting(db.Model):
    __tablename__ = "settings"

    DEFAULTS = {
        "site_name": ("Storefront", "string"),
        "default_currency": ("EUR", "string"),
        "tax_rate": ("0", "decimal"),  # percent
        "prices_include_tax": ("0", "boolean"),
        "free_shipping_threshold": ("100.00", "decimal"),
        "flat_shipping_amount": ("10.00", "decimal"),
        "company_address": ("", "string"),
        "contact_phone": ("", "string"),
        "contact_email": ("", "string"),
        "company_iban": ("", "string"),
        "company_account_holder": ("", "string"),
    }

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), nullable=False, unique=True)
    value = db.Column(db.Text, nullable=True)
    type = db.Column(db.String(20), nullable=False, default="string")

    @staticmethod
    def _cast(raw, type_):
        if raw is None:
            return None
        if type_ == "boolean":
            return str(raw).strip().lower() in {"1", "true", "yes", "on"}
        if type_ == "integer":
            return int(raw)
        if type_ == "decimal":
            return Decimal(str(raw))
        if type_ == "json":
            return json.loads(raw)
        return raw

    @classmethod
    def get(cls, key: str, default=None):
        row = cls.query.filter_by(key=key).first()
        if row is not None:
            return cls._cast(row.value, row.type)
        if default is not None:
            return default
        if key in cls.DEFAULTS:
            raw, type_ = cls.DEFAULTS[key]
            return cls._cast(raw, type_)
        return None

    @classmethod
    def set(cls, key: str, value, type_: str = "string") -> "Setting":
        if type_ == "boolean":
            stored = "1" if value else "0"
        elif type_ == "json":
            stored = value if isinstance(value, str) else json.dumps(value)
        else:
            stored = str(value)

        row = cls.query.filter_by(key=key).first()
        if row is None:
            row = cls(key=key)
            db.session.add(row)
        row.value = stored
        row.type = type_
        return row


class ContactMessage(db.Model):
    __tablename__ = "contact_messages"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    subject = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
