# Overview: Service-layer operations for sale numbering; daily sequence allocation.

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Sale, SaleNumberSequence
from ..time_utils import day_bounds, utcnow


SALE_NUMBER_PREFIX = "SALE"


def format_sale_number(day: date, sequence: int) -> str:
    """SALE-YYYYMMDD-NNNN; NNNN widens past 9999 rather than wrapping."""
    return f"{SALE_NUMBER_PREFIX}-{day:%Y%m%d}-{sequence:04d}"


def _sales_recorded_on(day: date) -> int:
    start, end = day_bounds(day)
    return int(
        db.session.query(func.count(Sale.id))
        .filter(Sale.created_at >= start, Sale.created_at < end)
        .scalar()
        or 0
    )


def allocate_daily_sequence(day: date) -> int:
    """
    Atomically allocate the next sequence value for `day`.

    The day's counter row is bumped with a single UPDATE, which takes a row
    (or database) write lock held until the surrounding transaction ends:
    concurrent sales serialize here and can never draw the same value. A
    rolled-back sale rolls its increment back too, so failed sales leave no
    gaps.

    The first sale of a day creates the row, seeded from the number of sales
    already recorded that day so the result always equals count + 1 for a
    single writer.
    """
    stmt = (
        update(SaleNumberSequence)
        .where(SaleNumberSequence.sale_date == day)
        .values(next_number=SaleNumberSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        first = _sales_recorded_on(day) + 1
        try:
            with db.session.begin_nested():
                db.session.add(SaleNumberSequence(sale_date=day, next_number=first + 1))
            return first
        except IntegrityError:
            # Another transaction created the row between our UPDATE and INSERT
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(SaleNumberSequence.next_number)
        .filter_by(sale_date=day)
        .scalar()
    )
    return current - 1


def next_sale_number(now: datetime | None = None) -> str:
    """
    Allocate the sale number for a sale recorded at `now` (UTC).

    Must run inside the sale's write transaction.
    """
    now = now or utcnow()
    day = now.date()
    return format_sale_number(day, allocate_daily_sequence(day))
