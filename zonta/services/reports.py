"""
Back-office queries: donation listing/filters, aggregates, CSV export and
shop statistics. Read-only; callers own the session.
"""

from __future__ import annotations

import csv
import io
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import func, select

from zonta.errors import ValidationError
from zonta.extensions import db
from zonta.models import ORDER_STATUSES, Order, Product, utcnow

CSV_HEADER = ["Date", "Donor Name", "Email", "Amount", "Purpose", "Status", "Message"]

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
LOW_STOCK_THRESHOLD = 5


def _parse_date(raw: Optional[str], field: str, *, end: bool = False) -> Optional[datetime]:
    s = (raw or "").strip()
    if not s:
        return None
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date", field=field) from None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    if end and len(s) <= 10:
        # bare date: include the whole day
        dt = dt + timedelta(days=1) - timedelta(microseconds=1)
    return dt


def donation_filters(args: Mapping[str, Any]) -> List[Any]:
    """WHERE clauses for the admin donation list/export query string."""
    clauses: List[Any] = [Order.kind == "donation"]

    status = (args.get("status") or "").strip()
    if status:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}", field="status")
        clauses.append(Order.status == status)

    purpose = (args.get("purpose") or "").strip()
    if purpose:
        clauses.append(Order.purpose == purpose)

    start = _parse_date(args.get("start_date") or args.get("startDate"), "start_date")
    end = _parse_date(args.get("end_date") or args.get("endDate"), "end_date", end=True)
    if start:
        clauses.append(Order.created_at >= start)
    if end:
        clauses.append(Order.created_at <= end)
    return clauses


def _page_args(args: Mapping[str, Any]) -> Tuple[int, int]:
    def _int(key: str, default: int) -> int:
        try:
            return int(str(args.get(key) or default))
        except ValueError:
            raise ValidationError(f"{key} must be an integer", field=key) from None

    page = max(1, _int("page", 1))
    limit = min(MAX_PAGE_SIZE, max(1, _int("limit", DEFAULT_PAGE_SIZE)))
    return page, limit


def _completed_totals(extra: Iterable[Any] = ()) -> Dict[str, Any]:
    row = db.session.execute(
        select(
            func.coalesce(func.sum(Order.amount_cents), 0),
            func.count(Order.id),
        ).where(Order.kind == "donation", Order.status == "completed", *extra)
    ).one()
    total_cents, count = int(row[0] or 0), int(row[1] or 0)
    avg_cents = int(round(total_cents / count)) if count else 0
    return {
        "totalAmountCents": total_cents,
        "totalAmount": round(total_cents / 100.0, 2),
        "count": count,
        "averageAmountCents": avg_cents,
        "averageAmount": round(avg_cents / 100.0, 2),
    }


def list_donations(args: Mapping[str, Any]) -> Dict[str, Any]:
    clauses = donation_filters(args)
    page, limit = _page_args(args)

    total = int(db.session.execute(select(func.count(Order.id)).where(*clauses)).scalar() or 0)
    rows = (
        db.session.execute(
            select(Order)
            .where(*clauses)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        .scalars()
        .all()
    )

    return {
        "donations": [o.as_dict() for o in rows],
        "total": total,
        "totalPages": (total + limit - 1) // limit,
        "currentPage": page,
        "statistics": _completed_totals(),
    }


def donation_stats(now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()

    by_purpose_rows = db.session.execute(
        select(
            Order.purpose,
            func.coalesce(func.sum(Order.amount_cents), 0).label("total"),
            func.count(Order.id),
        )
        .where(Order.kind == "donation", Order.status == "completed")
        .group_by(Order.purpose)
        .order_by(func.sum(Order.amount_cents).desc())
    ).all()

    last30 = _completed_totals([Order.completed_at >= now - timedelta(days=30)])

    return {
        "total": _completed_totals(),
        "byPurpose": [
            {
                "purpose": purpose or "General Fund",
                "totalAmountCents": int(total or 0),
                "totalAmount": round(int(total or 0) / 100.0, 2),
                "count": int(count or 0),
            }
            for purpose, total, count in by_purpose_rows
        ],
        "last30Days": {k: last30[k] for k in ("totalAmountCents", "totalAmount", "count")},
    }


def export_donations_csv(args: Mapping[str, Any]) -> str:
    """CSV of filtered donations, newest first; anonymous donors are redacted."""
    rows = (
        db.session.execute(
            select(Order).where(*donation_filters(args)).order_by(Order.created_at.desc(), Order.id.desc())
        )
        .scalars()
        .all()
    )

    output = io.StringIO(newline="")
    writer = csv.writer(output)
    writer.writerow(CSV_HEADER)
    for o in rows:
        writer.writerow(
            [
                o.created_at.strftime("%Y-%m-%d") if o.created_at else "",
                "Anonymous" if o.is_anonymous else o.name,
                "" if o.is_anonymous else o.email,
                f"{o.amount_dollars:.2f}",
                o.purpose_label,
                o.status,
                (o.message or "").replace("\r", " ").replace("\n", " "),
            ]
        )
    return output.getvalue()


# ----------------------------
# Shop
# ----------------------------
def product_stats() -> Dict[str, Any]:
    def _scalar(q) -> int:
        return int(db.session.execute(q).scalar() or 0)

    tracked_active = (Product.track_inventory.is_(True), Product.status == "active")

    revenue_cents = _scalar(
        select(func.coalesce(func.sum(Order.amount_cents), 0)).where(
            Order.kind == "product", Order.status == "completed"
        )
    )
    return {
        "totalProducts": _scalar(select(func.count(Product.id))),
        "activeProducts": _scalar(select(func.count(Product.id)).where(Product.status == "active")),
        "totalInventory": _scalar(
            select(func.coalesce(func.sum(Product.inventory), 0)).where(Product.track_inventory.is_(True))
        ),
        "totalSold": _scalar(select(func.coalesce(func.sum(Product.total_sold), 0))),
        "totalRevenueCents": revenue_cents,
        "totalRevenue": round(revenue_cents / 100.0, 2),
        "lowStockProducts": _scalar(
            select(func.count(Product.id)).where(
                *tracked_active, Product.inventory > 0, Product.inventory < LOW_STOCK_THRESHOLD
            )
        ),
        "outOfStockProducts": _scalar(select(func.count(Product.id)).where(*tracked_active, Product.inventory == 0)),
    }


def product_categories() -> List[Dict[str, Any]]:
    rows = db.session.execute(
        select(Product.category, func.count(Product.id))
        .where(Product.status == "active")
        .group_by(Product.category)
        .order_by(Product.category)
    ).all()
    return [{"category": c, "count": int(n)} for c, n in rows]


__all__ = [
    "CSV_HEADER",
    "donation_filters",
    "donation_stats",
    "export_donations_csv",
    "list_donations",
    "product_categories",
    "product_stats",
]
