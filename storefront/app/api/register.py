from flask import Flask

from storefront.modules.auth.routes import bp as auth_api_bp, web_bp as auth_bp
from storefront.modules.catalog.routes import bp as catalog_api_bp, web_bp as catalog_bp
from storefront.modules.cart.routes import bp as cart_bp
from storefront.modules.checkout.routes import bp as checkout_bp
from storefront.modules.promotions.routes import bp as promotions_bp
from storefront.modules.admin_orders.routes import bp as admin_orders_bp
from storefront.modules.pages.routes import bp as pages_bp


def register_api_blueprints(app: Flask) -> None:
    app.register_blueprint(auth_api_bp, url_prefix="/api")
    app.register_blueprint(catalog_api_bp, url_prefix="/api")
    app.register_blueprint(promotions_bp, url_prefix="/api")

    # Root API document
    @app.get("/api")
    def api_index():
        return {
            "name": f"{app.config['SITE_NAME']} API",
            "version": "0.1.0",
            "endpoints": {
                "auth": ["/users", "/auth/login", "/auth/logout", "/users/me"],
                "catalog": ["/products", "/products/<id>"],
                "promotions": ["/promotion/validate"],
            },
        }, 200


def register_page_blueprints(app: Flask) -> None:
    app.register_blueprint(catalog_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(pages_bp)
    app.register_blueprint(admin_orders_bp, url_prefix="/admin/orders")
