from __future__ import annotations

import logging
from flask import Flask, jsonify, render_template
from werkzeug.exceptions import HTTPException

from storefront.app.config import Config
from storefront.app.extensions import db, migrate, cors
from storefront.app.common.errors import ApiError
from storefront.app.common.money import format_money
from storefront.app.common.request_context import (
    current_request_id,
    init_request_id,
    mirror_request_id,
    wants_json,
)
from storefront.app.api.register import register_api_blueprints, register_page_blueprints
from storefront.app.cli import cli_bp

ERROR_TEMPLATES = {403: "errors/403.html", 404: "errors/404.html"}


def create_app(config_object: type[Config] = Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    cors.init_app(app, resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS") or "*"}})

    # Request id
    @app.before_request
    def _before_request():
        init_request_id()

    app.after_request(mirror_request_id)

    @app.get("/health")
    def health():
        return {"status": "ok"}, 200

    register_api_blueprints(app)
    register_page_blueprints(app)

    # CLI (flask init-db / flask seed)
    app.register_blueprint(cli_bp)

    _register_template_helpers(app)
    _register_error_handlers(app)
    return app


def _register_template_helpers(app: Flask) -> None:
    from storefront.app.common.auth import current_account
    from storefront.app.models import Setting
    from storefront.modules.cart.service import find_cart

    @app.template_filter("money")
    def money_filter(cents, currency=None):
        return format_money(cents, currency or app.config["DEFAULT_CURRENCY"])

    @app.context_processor
    def inject_globals():
        account = current_account()
        cart = find_cart()
        return {
            "current_user": account,
            "cart_count": cart.total_items if cart else 0,
            "site_name": Setting.get("site_name", app.config["SITE_NAME"]),
        }


def _error_page(status: int, message: str):
    template = ERROR_TEMPLATES.get(status, "errors/500.html")
    return render_template(template, status=status, message=message, request_id=current_request_id()), status


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def handle_api_error(err: ApiError):
        if wants_json():
            return jsonify(err.to_dict(current_request_id())), err.status_code
        return _error_page(err.status_code, err.message)

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        if not wants_json():
            return _error_page(err.code or 500, err.description)
        # Normalize Werkzeug errors into our JSON shape
        payload = {
            "error": {
                "code": "http_error",
                "message": err.description,
                "details": {"name": err.name},
                "request_id": current_request_id(),
            }
        }
        return jsonify(payload), err.code or 500

    @app.errorhandler(Exception)
    def handle_unexpected(err: Exception):
        app.logger.exception("Unhandled exception request_id=%s", current_request_id())
        db.session.rollback()
        if not wants_json():
            return _error_page(500, "Something went wrong on our side.")
        payload = {
            "error": {
                "code": "internal_error",
                "message": "Internal server error",
                "details": {},
                "request_id": current_request_id(),
            }
        }
        return jsonify(payload), 500
