from __future__ import annotations

from flask import Blueprint, abort, current_app, render_template, request

from storefront.app.extensions import db
from storefront.app.models import Category, Product
from storefront.app.common.errors import abort_json

bp = Blueprint("catalog_api", __name__)
web_bp = Blueprint("catalog", __name__)

SORTS = {
    "newest": (Product.created_at.desc(), Product.id.desc()),
    "price_asc": (Product.price_cents.asc(), Product.id.asc()),
    "price_desc": (Product.price_cents.desc(), Product.id.asc()),
    "name": (Product.name.asc(), Product.id.asc()),
}


def product_to_dict(p: Product, full: bool = False) -> dict:
    data = {
        "id": p.id,
        "sku": p.sku,
        "slug": p.slug,
        "name": p.name,
        "category": p.category.slug if p.category else None,
        "price_cents": p.price_cents,
        "stock_qty": p.stock_qty,
        "in_stock": p.in_stock,
        "image_url": p.image_url,
    }
    if full:
        data["description"] = p.description
    return data


def _product_query(args):
    """Active products narrowed by `search`, `category` (slug) and `sort`."""
    q = Product.query.filter(Product.is_active.is_(True))

    search = (args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(Product.name.ilike(like) | Product.description.ilike(like) | Product.sku.ilike(like))

    category = (args.get("category") or "").strip()
    if category:
        q = q.join(Category).filter(Category.slug == category)

    sort = args.get("sort") if args.get("sort") in SORTS else "newest"
    return q.order_by(*SORTS[sort]), {"search": search, "category": category, "sort": sort}


# --- API -----------------------------------------------------------------


@bp.get("/products")
def list_products():
    """GET /api/products

    Query params: search, category, sort, page, per_page (max 100).
    """
    q, filters = _product_query(request.args)
    per_page = min(request.args.get("per_page", current_app.config["PRODUCTS_PER_PAGE"], type=int), 100)
    page = q.paginate(page=request.args.get("page", 1, type=int), per_page=per_page, error_out=False)

    return {
        "items": [product_to_dict(p) for p in page.items],
        "pagination": {"page": page.page, "per_page": page.per_page, "total": page.total, "pages": page.pages},
        "filters": filters,
    }, 200


@bp.get("/products/<int:product_id>")
def get_product(product_id: int):
    p = db.session.get(Product, product_id)
    if not p or not p.is_active:
        abort_json(404, "not_found", "Product not found")
    return product_to_dict(p, full=True), 200


# --- Pages ---------------------------------------------------------------


@web_bp.get("/")
def home():
    featured = (
        Product.query.filter(Product.is_active.is_(True), Product.stock_qty > 0)
        .order_by(Product.created_at.desc(), Product.id.desc())
        .limit(8)
        .all()
    )
    categories = Category.query.order_by(Category.name).all()
    return render_template("pages/home.html", featured=featured, categories=categories)


@web_bp.get("/products")
def products_page():
    q, filters = _product_query(request.args)
    page = q.paginate(
        page=request.args.get("page", 1, type=int),
        per_page=current_app.config["PRODUCTS_PER_PAGE"],
        error_out=False,
    )
    categories = Category.query.order_by(Category.name).all()
    return render_template(
        "pages/products.html",
        page=page,
        products=page.items,
        categories=categories,
        filters=filters,
        sorts=list(SORTS),
    )


@web_bp.get("/products/<slug>")
def product_page(slug: str):
    product = Product.query.filter_by(slug=slug).first()
    if product is None or not product.is_active:
        abort(404)
    return render_template("pages/product.html", product=product)
