"""
Public shop catalogue (read-only JSON).

  GET /api/products                ?category=&featured=true&search=&sort=
  GET /api/products/featured
  GET /api/products/categories
  GET /api/products/<id-or-slug>   (counts a view)

Only ``active`` products are listed publicly.
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import or_, select, update as sa_update

from zonta.errors import NotFoundError
from zonta.extensions import csrf, db
from zonta.models import Product, row_id
from zonta.services.reports import product_categories

bp = Blueprint("shop", __name__, url_prefix="/api/products")
# public checkout takes JSON only; no session to ride
csrf.exempt(bp)

_SORTS = {
    "-createdAt": Product.created_at.desc(),
    "createdAt": Product.created_at.asc(),
    "price": Product.price_cents.asc(),
    "-price": Product.price_cents.desc(),
    "name": Product.name.asc(),
    "-totalSold": Product.total_sold.desc(),
}


@bp.get("")
@bp.get("/")
def list_products():
    q = select(Product).where(Product.status == "active")

    category = (request.args.get("category") or "").strip()
    if category:
        q = q.where(Product.category == category)
    if (request.args.get("featured") or "").lower() == "true":
        q = q.where(Product.featured.is_(True))

    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.where(or_(Product.name.ilike(like), Product.description.ilike(like)))

    sort = request.args.get("sort") or request.args.get("sortBy") or "-createdAt"
    q = q.order_by(_SORTS.get(sort, Product.created_at.desc()), Product.id.desc())

    products = db.session.execute(q).scalars().all()
    return jsonify({"ok": True, "count": len(products), "data": [p.as_dict() for p in products]})


@bp.get("/featured")
def featured_products():
    products = (
        db.session.execute(
            select(Product)
            .where(Product.status == "active", Product.featured.is_(True))
            .order_by(Product.created_at.desc())
        )
        .scalars()
        .all()
    )
    return jsonify({"ok": True, "count": len(products), "data": [p.as_dict() for p in products]})


@bp.get("/categories")
def categories():
    return jsonify({"ok": True, "data": product_categories()})


@bp.get("/<identifier>")
def product_detail(identifier: str):
    pk = row_id(identifier)
    product = db.session.get(Product, pk) if pk is not None else None
    if product is None:
        product = db.session.execute(select(Product).where(Product.slug == identifier)).scalar_one_or_none()
    if product is None:
        raise NotFoundError("Product not found")

    db.session.execute(
        sa_update(Product).where(Product.id == product.id).values(views=Product.views + 1)
    )
    db.session.commit()
    db.session.refresh(product)
    current_app.logger.debug("shop: product %s viewed", product.id)
    return jsonify({"ok": True, "data": product.as_dict()})
