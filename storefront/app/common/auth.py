"""Very small auth layer (session-based).

We store `user_id` in the Flask session; there are no tokens or refresh
flows. Page requests are redirected to the login form, API/XHR callers
get a JSON error.
"""

from functools import wraps
from typing import Callable, TypeVar, Any

from flask import flash, redirect, request, session, url_for

from storefront.app.extensions import db
from storefront.app.models import Account
from storefront.app.common.errors import abort_json
from storefront.app.common.request_context import wants_json

F = TypeVar("F", bound=Callable[..., Any])


def current_account() -> Account | None:
    uid = session.get("user_id")
    if not uid:
        return None
    return db.session.get(Account, uid)


def _to_login():
    flash("Please log in to continue.", "info")
    return redirect(url_for("auth.login_page", next=request.full_path))


def login_required(fn: F) -> F:
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not current_account():
            if wants_json():
                abort_json(401, "unauthorized", "Authentication required")
            return _to_login()
        return fn(*args, **kwargs)

    return wrapper  # type: ignore


def admin_required(fn: F) -> F:
    @wraps(fn)
    def wrapper(*args, **kwargs):
        account = current_account()
        if not account:
            if wants_json():
                abort_json(401, "unauthorized", "Authentication required")
            return _to_login()
        if not account.is_admin:
            abort_json(403, "forbidden", "Administrator access required")
        return fn(*args, **kwargs)

    return wrapper  # type: ignore
