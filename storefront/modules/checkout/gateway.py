"""Payment gateway boundary.

Checkout only talks to a `CheckoutGateway`. The bundled implementation
keeps sessions in our own database; collecting the money happens
elsewhere (bank transfer, cash on delivery, or auto-capture in dev).
"""

from __future__ import annotations

import logging
import secrets
from typing import Protocol

from flask import current_app, url_for

from storefront.app.extensions import db
from storefront.app.models import CheckoutSession, Order

log = logging.getLogger(__name__)

SESSION_ID_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"


class CheckoutGateway(Protocol):
    def create_session(self, order: Order, success_url: str, cancel_url: str) -> CheckoutSession: ...

    def retrieve_session(self, session_id: str) -> CheckoutSession | None: ...


class LocalCheckoutGateway:
    def __init__(self, auto_capture: bool = False, pending_url: str = "") -> None:
        self.auto_capture = auto_capture
        # Where unpaid sessions land; the session id is substituted in
        self.pending_url = pending_url

    def create_session(self, order: Order, success_url: str, cancel_url: str) -> CheckoutSession:
        sid = f"cs_{secrets.token_hex(16)}"
        cs = CheckoutSession(
            id=sid,
            order_id=order.id,
            amount_total_cents=order.total_cents,
            currency=order.currency,
            customer_email=order.customer_email,
        )
        if self.auto_capture:
            cs.status = "complete"
            cs.payment_status = "paid"
            cs.url = success_url.replace(SESSION_ID_PLACEHOLDER, sid)
        else:
            cs.url = (self.pending_url or cancel_url).replace(SESSION_ID_PLACEHOLDER, sid)

        db.session.add(cs)
        order.checkout_session_id = sid
        log.info(
            "Checkout session created id=%s order=%s amount=%s paid=%s",
            sid,
            order.order_number,
            cs.amount_total_cents,
            cs.payment_status,
        )
        return cs

    def retrieve_session(self, session_id: str) -> CheckoutSession | None:
        if not session_id:
            return None
        return db.session.get(CheckoutSession, session_id)


def with_session_placeholder(endpoint: str) -> str:
    """External URL for `endpoint` with `?session_id={CHECKOUT_SESSION_ID}`."""
    return f"{url_for(endpoint, _external=True)}?session_id={SESSION_ID_PLACEHOLDER}"


def get_gateway() -> CheckoutGateway:
    return LocalCheckoutGateway(
        auto_capture=current_app.config.get("PAYMENT_AUTO_CAPTURE", False),
        pending_url=with_session_placeholder("checkout.show"),
    )
