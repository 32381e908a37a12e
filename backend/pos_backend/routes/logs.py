# Overview: Flask API routes for the system log; read-only, admin only.

from flask import Blueprint, request

from ..decorators import require_auth, require_permission
from ..responses import ok
from ..services.log_service import list_system_logs
from ..validation import parse_date_arg

logs_bp = Blueprint("logs", __name__, url_prefix="/api/logs")


@logs_bp.get("")
@require_auth
@require_permission("VIEW_LOGS")
def list_logs():
    """
    Query params:
    - level: debug|info|warn|error|audit
    - module: str (e.g. sales, inventory, auth)
    - user_id: int
    - date_from, date_to: ISO-8601 date or datetime (date_to inclusive)
    - search: message/action substring
    - limit: int (default 50, max 500)
    """
    logs = list_system_logs(
        level=request.args.get("level") or None,
        module=request.args.get("module") or None,
        user_id=request.args.get("user_id", type=int),
        date_from=parse_date_arg("date_from", request.args.get("date_from")),
        date_to=parse_date_arg("date_to", request.args.get("date_to")),
        search=request.args.get("search") or None,
        limit=request.args.get("limit", default=50, type=int),
    )
    return ok([entry.to_dict() for entry in logs])
