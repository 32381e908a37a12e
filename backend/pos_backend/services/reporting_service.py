# Overview: Service-layer operations for reporting; read-only sales queries and summaries.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func, select

from ..errors import NotFoundError
from ..extensions import db
from ..models import Sale, SaleItem
from ..models.sales import SALE_STATUS_COMPLETED, SALE_STATUSES
from ..time_utils import period_start, utcnow, to_utc_z
from ..validation import ValidationError

SUMMARY_PERIODS = ("today", "week", "month")


def _whole_day_end(date_to: datetime) -> datetime:
    """
    date_to is inclusive. A bare date (midnight) covers that whole day.
    Returns an exclusive upper bound.
    """
    if date_to.time() == datetime.min.time():
        return date_to + timedelta(days=1)
    return date_to + timedelta(microseconds=1)


def list_sales(
    *,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    status: str | None = None,
    cashier_id: int | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[Sale]:
    """Newest first."""
    if status is not None and status not in SALE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(SALE_STATUSES)}")

    q = db.session.query(Sale)
    if date_from is not None:
        q = q.filter(Sale.created_at >= date_from)
    if date_to is not None:
        q = q.filter(Sale.created_at < _whole_day_end(date_to))
    if status is not None:
        q = q.filter(Sale.status == status)
    if cashier_id is not None:
        q = q.filter(Sale.user_id == cashier_id)

    limit = max(1, min(limit, 100))
    offset = max(0, offset)
    return q.order_by(Sale.created_at.desc(), Sale.id.desc()).offset(offset).limit(limit).all()


def get_sale(sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if sale is None:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def sales_summary(period: str = "today", now: datetime | None = None) -> dict:
    """
    Totals over completed sales since the start of `period` (today, week, month).

    Voided sales are excluded. top_products groups by the snapshot name, so a
    renamed product reports its sales under the name it was sold as.
    """
    if period not in SUMMARY_PERIODS:
        raise ValidationError(f"period must be one of: {', '.join(SUMMARY_PERIODS)}")

    now = now or utcnow()
    start = period_start(period, now)

    base = db.session.query(Sale).filter(
        Sale.status == SALE_STATUS_COMPLETED,
        Sale.created_at >= start,
        Sale.created_at <= now,
    )

    row = base.with_entities(
        func.count(Sale.id).label("total_sales"),
        func.coalesce(func.sum(Sale.total_amount_cents), 0).label("revenue"),
    ).one()

    total_sales = int(row.total_sales or 0)
    total_revenue = int(row.revenue or 0)
    average_sale = (total_revenue + total_sales // 2) // total_sales if total_sales else 0

    sale_ids = base.with_entities(Sale.id).subquery()
    top_rows = (
        db.session.query(
            SaleItem.product_name,
            func.sum(SaleItem.quantity).label("total_qty"),
            func.sum(SaleItem.subtotal_cents).label("total_revenue"),
        )
        .filter(SaleItem.sale_id.in_(select(sale_ids.c.id)))
        .group_by(SaleItem.product_name)
        .order_by(func.sum(SaleItem.quantity).desc(), SaleItem.product_name.asc())
        .limit(5)
        .all()
    )

    return {
        "period": period,
        "from": to_utc_z(start),
        "to": to_utc_z(now),
        "total_sales": total_sales,
        "total_revenue_cents": total_revenue,
        "average_sale_cents": average_sale,
        "top_products": [
            {
                "product_name": r.product_name,
                "total_qty": int(r.total_qty or 0),
                "total_revenue_cents": int(r.total_revenue or 0),
            }
            for r in top_rows
        ],
    }
