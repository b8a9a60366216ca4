from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List
from flask import request

from storefront.app.common.errors import abort_json, abort_validation

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def get_json() -> Dict[str, Any]:
    if not request.is_json:
        abort_json(400, "invalid_json", "Request must be application/json")
    data = request.get_json(silent=True)
    if data is None or not isinstance(data, dict):
        abort_json(400, "invalid_json", "Malformed JSON body")
    return data


def get_payload() -> Dict[str, Any]:
    """JSON body for XHR callers, nested form fields for plain form posts."""
    if request.is_json:
        return get_json()
    return nest_form(request.form)


def nest_form(form) -> Dict[str, Any]:
    """Turn `sender_info.company_name` style keys into nested dicts."""
    out: Dict[str, Any] = {}
    for key in form.keys():
        values = form.getlist(key)
        value: Any = values if key.endswith("[]") else values[-1]
        parts = key.rstrip("[]").split(".")
        node = out
        for part in parts[:-1]:
            node = node.setdefault(part, {})
            if not isinstance(node, dict):
                break
        else:
            node[parts[-1]] = value
    return out


def require_fields(data: Dict[str, Any], fields: Iterable[str]) -> None:
    missing = [f for f in fields if f not in data]
    if missing:
        abort_json(400, "validation_error", "Missing required fields", {"missing": missing})


def as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def clean_str(value: Any) -> str:
    return "" if value is None else str(value).strip()


def is_email(value: str) -> bool:
    return bool(EMAIL_REGEX.match(value or ""))


class Errors:
    """Collects human-readable messages in the order checks run."""

    def __init__(self) -> None:
        self.messages: List[str] = []

    def add(self, message: str) -> None:
        self.messages.append(message)

    def check(self, ok: bool, message: str) -> bool:
        if not ok:
            self.add(message)
        return ok

    def __bool__(self) -> bool:
        return bool(self.messages)

    def raise_if_any(self, status_code: int = 422) -> None:
        if self.messages:
            abort_validation(self.messages, status_code)
