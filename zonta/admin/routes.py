"""
Admin API (JSON, session-authenticated)

- Flask-Login session; every route except /admin/login requires an active
  ``is_admin`` user.
- Donation list/stats/export read orders of kind ``donation``.
- Product CRUD + restock for the shop catalogue.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import Blueprint, Response, current_app, jsonify, request
from flask_login import current_user, login_user, logout_user
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from zonta.errors import NotFoundError, ValidationError
from zonta.extensions import csrf, db
from zonta.models import (
    MAX_INT_COLUMN,
    PRODUCT_CATEGORIES,
    PRODUCT_STATUSES,
    WEIGHT_UNITS,
    Order,
    Product,
    User,
    utcnow,
)
from zonta.services.orders import parse_amount_cents
from zonta.services.reports import (
    donation_stats,
    export_donations_csv,
    list_donations,
    product_stats,
)

admin = Blueprint("admin", __name__, url_prefix="/admin")
# token-less; see _admin_guard for the JSON-only rule
csrf.exempt(admin)

bp = admin
__all__ = ["bp", "admin"]

_PUBLIC_ENDPOINTS = {"admin.login"}


# ── Helpers ─────────────────────────────────────────────────────────────────
def _payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _json_error(message: str, status: int):
    return jsonify({"ok": False, "error": {"code": status, "message": message}}), status


def _get_or_404(model: Any, ident: int, label: str) -> Any:
    obj = db.session.get(model, ident)
    if obj is None:
        raise NotFoundError(f"{label} not found")
    return obj


def _opt_int(data: Dict[str, Any], key: str) -> Optional[int]:
    v = data.get(key)
    if v is None or v == "":
        return None
    if isinstance(v, bool):
        raise ValidationError(f"{key} must be an integer", field=key)
    try:
        n = int(str(v).strip())
    except ValueError:
        raise ValidationError(f"{key} must be an integer", field=key) from None
    if abs(n) > MAX_INT_COLUMN:
        raise ValidationError(f"{key} is too large", field=key)
    return n


def _choice(data: Dict[str, Any], key: str, choices: tuple) -> Optional[str]:
    v = data.get(key)
    if v is None:
        return None
    s = str(v).strip()
    if s not in choices:
        raise ValidationError(f"{key} must be one of: {', '.join(choices)}", field=key)
    return s


def _apply_product_payload(product: Product, data: Dict[str, Any], *, creating: bool) -> None:
    if creating or "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required", field="name")
        product.name = name[:200]
    if creating or "description" in data:
        description = str(data.get("description") or "").strip()
        if not description:
            raise ValidationError("description is required", field="description")
        product.description = description
    if "shortDescription" in data:
        product.short_description = (str(data.get("shortDescription") or "").strip()[:500]) or None

    price_keys = ("price_cents", "priceCents", "price", "amount")
    if creating or any(k in data for k in price_keys):
        cents_data = {
            "amount_cents": data.get("priceCents", data.get("price_cents")),
            "amount": data.get("price", data.get("amount")),
        }
        product.price_cents = parse_amount_cents({k: v for k, v in cents_data.items() if v is not None})
    if "compareAtPriceCents" in data:
        product.compare_at_price_cents = _opt_int(data, "compareAtPriceCents")

    if creating or "inventory" in data:
        inventory = _opt_int(data, "inventory") or 0
        if inventory < 0:
            raise ValidationError("inventory cannot be negative", field="inventory")
        product.inventory = inventory
    for key, attr in (
        ("trackInventory", "track_inventory"),
        ("allowBackorder", "allow_backorder"),
        ("featured", "featured"),
        ("requiresShipping", "requires_shipping"),
    ):
        if key in data:
            setattr(product, attr, bool(data.get(key)))

    if "sku" in data:
        product.sku = (str(data.get("sku") or "").strip()[:80]) or None
    category = _choice(data, "category", PRODUCT_CATEGORIES)
    if category:
        product.category = category
    status = _choice(data, "status", PRODUCT_STATUSES)
    if status:
        product.status = status
    unit = _choice(data, "weightUnit", WEIGHT_UNITS)
    if unit:
        product.weight_unit = unit
    if "weight" in data:
        w = data.get("weight")
        try:
            product.weight = float(w) if w not in (None, "") else None
        except (TypeError, ValueError):
            raise ValidationError("weight must be a number", field="weight") from None

    if "tags" in data:
        tags = data.get("tags") or []
        if isinstance(tags, str):
            tags = [t for t in (s.strip() for s in tags.split(",")) if t]
        product.tags = [str(t)[:40] for t in tags]
    if "images" in data:
        images = data.get("images") or []
        product.images = [i if isinstance(i, dict) else {"url": str(i)} for i in images]
        product.featured_image = None
    if "slug" in data:
        product.slug = (str(data.get("slug") or "").strip()[:220]) or None


def _commit_product(product: Product) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("A product with that slug or SKU already exists", field="slug") from None


# ── Guard ───────────────────────────────────────────────────────────────────
# Session-cookie auth without CSRF tokens: the control is JSON-only writes plus
# the CORS allow-list. A cross-site form can only send form or text bodies, and
# a cross-origin JSON request needs a preflight the allow-list refuses.
_JSON_EXEMPT_ENDPOINTS = {"admin.logout"}


@admin.before_request
def _admin_guard():
    if request.method == "OPTIONS":
        return None
    if (
        request.method in ("POST", "PUT", "PATCH")
        and request.endpoint not in _JSON_EXEMPT_ENDPOINTS
        and not request.is_json
    ):
        return _json_error("Content-Type must be application/json", 415)
    if request.endpoint in _PUBLIC_ENDPOINTS:
        return None
    if not current_user.is_authenticated:
        return _json_error("Authentication required", 401)
    if not getattr(current_user, "is_admin", False):
        return _json_error("Admin access required", 403)
    return None


# ───────────────────────────────
# Session
# ───────────────────────────────
@admin.post("/login")
def login():
    data = _payload()
    email = str(data.get("email") or "").strip().lower()
    password = str(data.get("password") or "")
    if not email or not password:
        raise ValidationError("email and password are required")

    user = db.session.execute(select(User).where(func.lower(User.email) == email)).scalar_one_or_none()
    if user is None or not user.check_password(password) or not user.is_active:
        current_app.logger.info("admin: failed login for %s", email)
        return _json_error("Invalid credentials", 401)
    if not user.is_admin:
        return _json_error("Admin access required", 403)

    login_user(user, remember=bool(data.get("remember")))
    user.last_login = utcnow()
    db.session.commit()
    current_app.logger.info("admin: %s signed in", user.email)
    return jsonify({"ok": True, "user": user.as_dict()})


@admin.post("/logout")
def logout():
    logout_user()
    return jsonify({"ok": True})


@admin.get("/me")
def me():
    return jsonify({"ok": True, "user": current_user.as_dict()})


# ───────────────────────────────
# Donations
# ───────────────────────────────
@admin.get("/donations")
def donations_list():
    return jsonify(list_donations(request.args))


@admin.get("/donations/stats")
def donations_stats():
    return jsonify(donation_stats())


@admin.get("/donations/export")
def donations_export():
    body = export_donations_csv(request.args)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="donations-{stamp}.csv"'},
    )


@admin.get("/donations/<int:order_id>")
def donation_detail(order_id: int):
    order = _get_or_404(Order, order_id, "Donation")
    if order.kind != "donation":
        raise NotFoundError("Donation not found")
    return jsonify(order.as_dict())


# ───────────────────────────────
# Products
# ───────────────────────────────
@admin.get("/products")
def products_list():
    q = select(Product).order_by(Product.created_at.desc(), Product.id.desc())
    status = (request.args.get("status") or "").strip()
    if status:
        q = q.where(Product.status == status)
    category = (request.args.get("category") or "").strip()
    if category:
        q = q.where(Product.category == category)
    products = db.session.execute(q).scalars().all()
    return jsonify({"ok": True, "count": len(products), "data": [p.as_dict() for p in products]})


@admin.get("/products/stats")
def products_stats():
    return jsonify({"ok": True, "data": product_stats()})


@admin.post("/products")
def product_create():
    product = Product()
    _apply_product_payload(product, _payload(), creating=True)
    db.session.add(product)
    _commit_product(product)
    current_app.logger.info("admin: product %s created by %s", product.id, current_user.email)
    return jsonify({"ok": True, "data": product.as_dict()}), 201


@admin.put("/products/<int:product_id>")
def product_update(product_id: int):
    product = _get_or_404(Product, product_id, "Product")
    _apply_product_payload(product, _payload(), creating=False)
    _commit_product(product)
    return jsonify({"ok": True, "data": product.as_dict()})


@admin.delete("/products/<int:product_id>")
def product_delete(product_id: int):
    product = _get_or_404(Product, product_id, "Product")
    db.session.delete(product)
    db.session.commit()
    current_app.logger.info("admin: product %s deleted by %s", product_id, current_user.email)
    return jsonify({"ok": True, "message": "Product deleted"})


@admin.post("/products/<int:product_id>/restock")
def product_restock(product_id: int):
    quantity = _opt_int(_payload(), "quantity")
    if not quantity or quantity < 1:
        raise ValidationError("quantity must be at least 1", field="quantity")

    product = db.session.get(Product, product_id, with_for_update=True, populate_existing=True)
    if product is None:
        raise NotFoundError("Product not found")
    if (product.inventory or 0) + quantity > MAX_INT_COLUMN:
        db.session.rollback()
        raise ValidationError("quantity is too large", field="quantity")
    product.increase_inventory(quantity)
    db.session.commit()
    return jsonify({"ok": True, "data": product.as_dict()})
