from __future__ import annotations

from urllib.parse import urlparse

from flask import Blueprint, current_app, flash, redirect, render_template, request, session, url_for
from werkzeug.security import check_password_hash, generate_password_hash

from storefront.app.extensions import db
from storefront.app.models import Account
from storefront.app.common.auth import current_account, login_required
from storefront.app.common.errors import abort_json
from storefront.app.common.validation import clean_str, get_json, is_email, require_fields
from storefront.modules.cart.service import merge_guest_cart

bp = Blueprint("auth_api", __name__)
web_bp = Blueprint("auth", __name__)


def account_to_dict(account: Account) -> dict:
    return {
        "id": account.id,
        "email": account.email,
        "first_name": account.first_name,
        "last_name": account.last_name,
        "phone_number": account.phone_number,
        "is_admin": account.is_admin,
    }


def authenticate(email: str, password: str) -> Account | None:
    account = Account.query.filter_by(email=clean_str(email).lower()).first()
    if not account or not check_password_hash(account.password_hash, password or ""):
        return None
    return account


def start_session(account: Account) -> None:
    """Sign in and fold whatever the guest put in their cart into the account cart."""
    merge_guest_cart(account.id)
    session["user_id"] = account.id
    current_app.logger.info("Login account=%s", account.id)


# --- API -----------------------------------------------------------------


@bp.post("/users")
def create_user():
    """POST /api/users - Create a new user account."""
    data = get_json()
    require_fields(data, ["email", "password", "first_name", "last_name"])

    email = clean_str(data["email"]).lower()
    if not is_email(email):
        abort_json(400, "validation_error", "Please provide a valid email address.")
    if len(str(data["password"])) < 8:
        abort_json(400, "validation_error", "Password must be at least 8 characters.")
    if Account.query.filter_by(email=email).first():
        abort_json(409, "conflict", "Email already registered")

    user = Account(
        email=email,
        password_hash=generate_password_hash(data["password"]),
        first_name=clean_str(data["first_name"]),
        last_name=clean_str(data["last_name"]),
        phone_number=data.get("phone_number"),
    )
    db.session.add(user)
    db.session.commit()

    return account_to_dict(user), 201


@bp.post("/auth/login")
def login():
    """POST /api/auth/login - Authenticate and start a session."""
    data = get_json()
    require_fields(data, ["email", "password"])

    user = authenticate(data["email"], data["password"])
    if not user:
        abort_json(401, "unauthorized", "Invalid email or password")

    start_session(user)
    return {"message": "logged_in", "user_id": user.id}, 200


@bp.post("/auth/logout")
def logout():
    """POST /api/auth/logout - Terminate session."""
    session.pop("user_id", None)
    return {"message": "logged_out"}, 200


@bp.get("/users/me")
@login_required
def me():
    """GET /api/users/me - Current authenticated user."""
    return account_to_dict(current_account()), 200


# --- Pages ---------------------------------------------------------------


def _safe_next(target: str | None) -> str:
    if target and not urlparse(target).netloc and target.startswith("/"):
        return target
    return url_for("catalog.home")


@web_bp.route("/login", methods=["GET", "POST"])
def login_page():
    if request.method == "GET":
        return render_template("auth/login.html", next=request.args.get("next", ""))

    user = authenticate(request.form.get("email", ""), request.form.get("password", ""))
    if not user:
        flash("Invalid email or password", "error")
        return render_template(
            "auth/login.html",
            next=request.form.get("next", ""),
            email=request.form.get("email", ""),
        ), 401

    start_session(user)
    flash(f"Welcome back, {user.first_name}!", "success")
    return redirect(_safe_next(request.form.get("next")))


@web_bp.route("/logout", methods=["GET", "POST"])
def logout_page():
    session.pop("user_id", None)
    flash("You have been logged out.", "info")
    return redirect(url_for("catalog.home"))
