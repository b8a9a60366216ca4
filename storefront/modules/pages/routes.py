from __future__ import annotations

from flask import Blueprint, Response, current_app, flash, redirect, render_template, request, url_for

from storefront.app.extensions import db
from storefront.app.models import ContactMessage, Setting
from storefront.app.common.errors import ApiError
from storefront.app.common.money import format_money, to_cents
from storefront.app.common.request_context import wants_json
from storefront.app.common.validation import Errors, clean_str, get_payload, is_email

bp = Blueprint("pages", __name__)

# slug -> (title prefix, meta description)
PAGES = {
    "about": (
        "About Us",
        "Learn more about {site}, our mission, values, and commitment to providing quality products "
        "and excellent customer service.",
    ),
    "privacy": (
        "Privacy Policy",
        "Read our privacy policy to understand how we collect, use, and protect your personal "
        "information when you use our website and services.",
    ),
    "terms": (
        "Terms of Service",
        "Review our terms of service to understand the rules and guidelines for using our website "
        "and purchasing our products.",
    ),
    "shipping-returns": (
        "Shipping & Returns",
        "Learn about our shipping options, delivery times, return policy, and how to exchange or "
        "return products you've purchased.",
    ),
    "faq": (
        "Frequently Asked Questions",
        "Find answers to commonly asked questions about our products, ordering process, shipping, "
        "returns, and customer service.",
    ),
}

DISALLOWED_PATHS = ("/admin/", "/dashboard/", "/cart/", "/checkout/", "/guest/checkout/", "/api/")


def page_meta(slug: str) -> dict:
    title, description = PAGES[slug]
    site = Setting.get("site_name")
    return {
        "title": f"{title} – {site}",
        "description": description.format(site=site),
        "canonical": url_for("pages.show", slug=slug, _external=True),
    }


@bp.get("/<any(about, privacy, terms, 'shipping-returns', faq):slug>")
def show(slug: str):
    template = f"pages/{slug.replace('-', '_')}.html"
    free_shipping = format_money(to_cents(Setting.get("free_shipping_threshold")), Setting.get("default_currency"))
    return render_template(template, meta=page_meta(slug), free_shipping=free_shipping)


def _contact_meta() -> dict:
    site = Setting.get("site_name")
    return {
        "title": f"Contact Us – {site}",
        "description": f"Get in touch with {site}. We usually reply within one business day.",
        "canonical": url_for("pages.contact", _external=True),
    }


def _validate_contact(data: dict) -> dict:
    form = {k: clean_str(data.get(k)) for k in ("first_name", "last_name", "email", "subject", "message")}
    errors = Errors()
    errors.check(bool(form["first_name"]), "First name is required.")
    errors.check(bool(form["last_name"]), "Last name is required.")
    if errors.check(bool(form["email"]), "Email is required."):
        errors.check(is_email(form["email"]), "Please provide a valid email address.")
    errors.check(bool(form["subject"]), "Subject is required.")
    if errors.check(bool(form["message"]), "Message is required."):
        errors.check(len(form["message"]) >= 10, "Message must be at least 10 characters.")
        errors.check(len(form["message"]) <= 5000, "Message may not be longer than 5000 characters.")
    for key in ("first_name", "last_name", "email", "subject"):
        errors.check(len(form[key]) <= 255, f"{key.replace('_', ' ').capitalize()} may not be longer than 255 characters.")
    errors.raise_if_any()
    return form


@bp.route("/contact", methods=["GET", "POST"])
def contact():
    if request.method == "GET":
        return render_template("pages/contact.html", meta=_contact_meta(), form={})

    data = get_payload()
    errors = []
    try:
        form = _validate_contact(data)
    except ApiError as err:
        if wants_json():
            raise
        errors = err.messages
        form = data

    if errors:
        flash(errors[0], "error")
        return render_template("pages/contact.html", meta=_contact_meta(), form=form, errors=errors), 422

    msg = ContactMessage(
        name=f"{form['first_name']} {form['last_name']}",
        email=form["email"].lower(),
        subject=form["subject"],
        message=form["message"],
    )
    db.session.add(msg)
    db.session.commit()
    current_app.logger.info("Contact message stored id=%s", msg.id)

    message = "Thank you for your message! We'll get back to you soon."
    if wants_json():
        return {"success": True, "message": message}, 201
    flash(message, "success")
    return redirect(url_for("pages.contact"))


@bp.get("/robots.txt")
def robots():
    lines = ["User-agent: *"]
    lines += [f"Disallow: {path}" for path in DISALLOWED_PATHS]
    lines += ["", f"Sitemap: {url_for('pages.sitemap', _external=True)}"]
    return Response("\n".join(lines) + "\n", mimetype="text/plain")


@bp.get("/sitemap.xml")
def sitemap():
    urls = [url_for("catalog.home", _external=True), url_for("catalog.products_page", _external=True)]
    urls += [url_for("pages.show", slug=slug, _external=True) for slug in PAGES]
    urls.append(url_for("pages.contact", _external=True))
    body = render_template("sitemap.xml", urls=urls)
    return Response(body, mimetype="application/xml")
