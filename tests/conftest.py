import pytest
from werkzeug.security import generate_password_hash

from storefront.app.config import TestConfig
from storefront.app.extensions import db
from storefront.app.factory import create_app
from storefront.app.models import Account, Address, Category, Order, OrderItem, Product, PromotionCode

PASSWORD = "Password123!"


@pytest.fixture()
def app():
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        seed()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture()
def manual_capture_client(app):
    # Local gateway leaves sessions unpaid; the customer lands on the show page
    app.config["PAYMENT_AUTO_CAPTURE"] = False
    with app.test_client() as client:
        yield client


def seed():
    customer = Account(
        email="test@test.com",
        password_hash=generate_password_hash(PASSWORD),
        first_name="Test",
        last_name="Customer",
    )
    admin = Account(
        email="admin@test.com",
        password_hash=generate_password_hash(PASSWORD),
        first_name="Store",
        last_name="Admin",
        is_admin=True,
    )
    boxes = Category(name="Boxes", slug="boxes")
    treats = Category(name="Treats", slug="treats")
    db.session.add_all([customer, admin, boxes, treats])
    db.session.flush()

    db.session.add_all(
        [
            Product(sku="TEST1", slug="product-1", name="Product 1", description="Desc 1",
                    price_cents=2999, stock_qty=100, category=boxes),
            Product(sku="TEST2", slug="product-2", name="Product 2", description="Desc 2",
                    price_cents=4999, stock_qty=5, category=boxes),
            Product(sku="TEST3", slug="sold-out", name="Sold Out", description="Gone",
                    price_cents=1500, stock_qty=0, category=treats),
            Product(sku="TEST4", slug="hidden", name="Hidden", description="Inactive",
                    price_cents=1000, stock_qty=10, is_active=False),
        ]
    )
    db.session.add_all(
        [
            PromotionCode(code="WELCOME10", percent_off=10),
            PromotionCode(code="FIVEOFF", amount_off_cents=500),
            PromotionCode(code="OFFLINE", amount_off_cents=500, active=False),
            PromotionCode(code="MAXED", amount_off_cents=500, max_redemptions=1, times_redeemed=1),
        ]
    )
    db.session.commit()


def product(sku: str) -> Product:
    return Product.query.filter_by(sku=sku).first()


def login(client, email="test@test.com", password=PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def login_admin(client):
    return login(client, "admin@test.com")


def make_order(
    order_number="ORD-2025-000001",
    status="pending",
    payment_status="pending",
    guest_email="guest@example.com",
    items=((2999, 2),),
    account=None,
    created_at=None,
):
    """Insert an order directly, bypassing checkout."""
    p = product("TEST1")
    billing = Address(
        type="billing",
        first_name="Grace",
        last_name="Hopper",
        address_line_1="1 Navy Way",
        city="Arlington",
        postal_code="22202",
        country="US",
    )
    order = Order(
        order_number=order_number,
        account_id=account.id if account else None,
        guest_email=None if account else guest_email,
        billing_address=billing,
        status=status,
        payment_status=payment_status,
        currency="EUR",
    )
    if created_at is not None:
        order.created_at = created_at
    subtotal = 0
    for unit, qty in items:
        order.items.append(
            OrderItem(product_id=p.id, product_name=p.name, quantity=qty,
                      unit_price_cents=unit, total_cents=unit * qty)
        )
        subtotal += unit * qty
    order.subtotal_cents = subtotal
    order.total_cents = subtotal
    db.session.add_all([billing, order])
    db.session.commit()
    return order
