# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/pos_backend/routes/sales.py
"""Sales API routes with permission enforcement"""

from flask import Blueprint, request, g

from ..services import reporting_service, sales_service
from ..services.event_sink import DatabaseEventSink
from ..validation import parse_date_arg, parse_sale_payload, parse_void_payload
from ..decorators import require_auth, require_permission
from ..responses import ok


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
@require_permission("CREATE_SALE")
def create_sale_route():
    """
    Record a completed sale.

    Requires: CREATE_SALE permission
    Available to: admin, cashier

    Body:
    {
      "items": [{"product_id": 1, "quantity": 2, "discount_cents": 0}],
      "payment_method": "cash|gcash|credit_card|others",
      "amount_tendered_cents": 50000,
      "customer_name": "...",   (optional)
      "notes": "..."            (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    kwargs = parse_sale_payload(data)

    sale = sales_service.create_sale(
        actor_id=g.current_user.id,
        events=DatabaseEventSink(ip_address=request.remote_addr),
        **kwargs,
    )
    return ok(sale.to_dict(), message="Sale completed successfully.", status=201)


@sales_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_sales_route():
    """
    Query params:
    - date_from, date_to: ISO-8601 date or datetime (date_to inclusive)
    - status: completed|voided|refunded
    - cashier_id: int
    - limit: int (default 20, max 100)
    - offset: int (default 0)
    """
    sales = reporting_service.list_sales(
        date_from=parse_date_arg("date_from", request.args.get("date_from")),
        date_to=parse_date_arg("date_to", request.args.get("date_to")),
        status=request.args.get("status") or None,
        cashier_id=request.args.get("cashier_id", type=int),
        limit=request.args.get("limit", default=20, type=int),
        offset=request.args.get("offset", default=0, type=int),
    )
    return ok([s.to_dict(include_items=False) for s in sales])


@sales_bp.get("/summary")
@require_auth
@require_permission("VIEW_SALES")
def sales_summary_route():
    """Query params: period = today (default) | week | month"""
    period = request.args.get("period", "today")
    return ok(reporting_service.sales_summary(period))


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_route(sale_id: int):
    sale = reporting_service.get_sale(sale_id)
    return ok(sale.to_dict())


@sales_bp.post("/<int:sale_id>/void")
@require_auth
@require_permission("VOID_SALE")
def void_sale_route(sale_id: int):
    """
    Void a completed sale and return its stock.

    Requires: VOID_SALE permission
    Available to: admin

    Body: {"reason": "..."}
    """
    data = request.get_json(silent=True)
    reason = parse_void_payload({} if data is None else data)

    sale = sales_service.void_sale(
        sale_id=sale_id,
        reason=reason,
        actor_id=g.current_user.id,
        events=DatabaseEventSink(ip_address=request.remote_addr),
    )
    return ok(sale.to_dict(), message="Sale voided successfully.")
