from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from sqlalchemy import CheckConstraint, Index, event
from sqlalchemy.orm import Mapped, mapped_column

from zonta.extensions import db

from .mixins import TimestampMixin

PRODUCT_CATEGORIES = ("Apparel", "Accessories", "Books", "Home & Garden", "Jewelry", "Art", "Other")
PRODUCT_STATUSES = ("active", "draft", "archived")
WEIGHT_UNITS = ("lb", "oz", "kg", "g")

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    return _SLUG_STRIP.sub("-", (name or "").lower()).strip("-")


class Product(db.Model, TimestampMixin):
    """Shop item with optional inventory tracking."""

    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("price_cents >= 0", name="ck_products_price_nonneg"),
        CheckConstraint("inventory >= 0", name="ck_products_inventory_nonneg"),
        CheckConstraint("total_sold >= 0", name="ck_products_total_sold_nonneg"),
        Index("ix_products_status_created", "status", "created_at"),
        Index("ix_products_category_status", "category", "status"),
        Index("ix_products_featured_status", "featured", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(200), nullable=False)
    description: Mapped[str] = mapped_column(db.Text, nullable=False)
    short_description: Mapped[Optional[str]] = mapped_column(db.String(500), nullable=True)

    # ---- Pricing (cents) ----
    price_cents: Mapped[int] = mapped_column(db.Integer, nullable=False)
    compare_at_price_cents: Mapped[Optional[int]] = mapped_column(db.Integer, nullable=True)

    # ---- Inventory ----
    inventory: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    track_inventory: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=True)
    allow_backorder: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    sku: Mapped[Optional[str]] = mapped_column(db.String(80), nullable=True, unique=True)

    # ---- Catalogue ----
    category: Mapped[str] = mapped_column(db.String(40), nullable=False, default="Other")
    tags: Mapped[List[str]] = mapped_column(db.JSON, nullable=False, default=list)
    images: Mapped[List[Dict[str, Any]]] = mapped_column(db.JSON, nullable=False, default=list)
    featured_image: Mapped[Optional[str]] = mapped_column(db.String(500), nullable=True)
    status: Mapped[str] = mapped_column(db.String(20), nullable=False, default="draft", index=True)
    featured: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    slug: Mapped[Optional[str]] = mapped_column(db.String(220), nullable=True, unique=True, index=True)

    # ---- Shipping ----
    weight: Mapped[Optional[float]] = mapped_column(db.Float, nullable=True)
    weight_unit: Mapped[str] = mapped_column(db.String(4), nullable=False, default="lb")
    requires_shipping: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=True)

    # ---- Stats ----
    total_sold: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    views: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)

    # ==========================================================
    # Availability
    # ==========================================================
    @property
    def in_stock(self) -> bool:
        if not self.track_inventory or self.allow_backorder:
            return True
        return (self.inventory or 0) > 0

    @property
    def discount_percentage(self) -> int:
        compare = self.compare_at_price_cents or 0
        if not compare or compare <= (self.price_cents or 0):
            return 0
        return int(round((compare - self.price_cents) / compare * 100))

    def is_available(self) -> bool:
        return self.status == "active" and self.in_stock

    def can_fulfil(self, quantity: int) -> bool:
        if not self.track_inventory or self.allow_backorder:
            return True
        return (self.inventory or 0) >= int(quantity)

    # ==========================================================
    # Inventory mutators (caller commits)
    # ==========================================================
    def decrease_inventory(self, quantity: int = 1) -> None:
        # Clamps at zero but always counts the full quantity as sold.
        if not self.track_inventory:
            return
        self.inventory = max(0, (self.inventory or 0) - int(quantity))
        self.total_sold = (self.total_sold or 0) + int(quantity)

    def increase_inventory(self, quantity: int = 1) -> None:
        if not self.track_inventory:
            return
        self.inventory = (self.inventory or 0) + int(quantity)

    # ==========================================================
    # Serialization
    # ==========================================================
    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "shortDescription": self.short_description,
            "priceCents": int(self.price_cents or 0),
            "price": round((self.price_cents or 0) / 100.0, 2),
            "compareAtPriceCents": self.compare_at_price_cents,
            "discountPercentage": self.discount_percentage,
            "inventory": int(self.inventory or 0),
            "trackInventory": bool(self.track_inventory),
            "allowBackorder": bool(self.allow_backorder),
            "inStock": self.in_stock,
            "sku": self.sku,
            "category": self.category,
            "tags": list(self.tags or []),
            "images": list(self.images or []),
            "featuredImage": self.featured_image,
            "status": self.status,
            "featured": bool(self.featured),
            "weight": self.weight,
            "weightUnit": self.weight_unit,
            "requiresShipping": bool(self.requires_shipping),
            "totalSold": int(self.total_sold or 0),
            "views": int(self.views or 0),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Product {self.id} {self.name!r} inventory={self.inventory}>"


@event.listens_for(Product, "before_insert")
@event.listens_for(Product, "before_update")
def _product_before_save(mapper, connection, target: Product) -> None:
    if target.name and not target.slug:
        target.slug = slugify(target.name)
    if target.images and not target.featured_image:
        first = target.images[0]
        target.featured_image = first.get("url") if isinstance(first, dict) else None
