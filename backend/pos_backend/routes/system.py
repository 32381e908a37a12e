# backend/pos_backend/routes/system.py
"""
System liveness, health and profile endpoints.
"""

import time

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import bearer_token, require_auth
from ..extensions import db
from ..models import Product, SessionToken, User
from ..permissions import ROLE_CAPABILITIES
from ..responses import ok
from ..services import session_service
from ..services.event_sink import DatabaseEventSink, emit_safely
from ..services.ledger_service import verify_all_ledgers
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        product_count = db.session.query(Product).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "products": product_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_session_service_health() -> dict:
    start_time = time.time()
    try:
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        # Expired but never revoked (could be cleaned up)
        expired_sessions = db.session.query(SessionToken).filter(
            SessionToken.expires_at < utcnow(),
            SessionToken.is_revoked.is_(False),
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "active_sessions": active_sessions,
                "expired_pending_cleanup": expired_sessions,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Session service health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Session service error"
        }


def check_ledger_health() -> dict:
    """
    Replay every product's ledger. A broken chain is reported as degraded:
    the system keeps selling, but an operator should investigate.
    """
    start_time = time.time()
    try:
        checks = verify_all_ledgers()
        broken = [c.product_id for c in checks if not c.ok]
        elapsed_ms = (time.time() - start_time) * 1000

        result = {
            "status": "degraded" if broken else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"products_checked": len(checks)},
        }
        if broken:
            result["warning"] = f"Ledger inconsistent for products: {', '.join(map(str, broken))}"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Ledger health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Ledger check error"
        }


@system_bp.get("/ping")
def ping():
    return ok({"pong": True, "server_time": to_utc_z(utcnow())})


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    all_checks = {
        "database": check_database_health(),
        "session_service": check_session_service_health(),
        "ledger": check_ledger_health(),
    }
    statuses = [c["status"] for c in all_checks.values()]

    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    data = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": all_checks,
    }
    return jsonify({"success": http_status == 200, "data": data}), http_status


@system_bp.get("/profile")
@require_auth
def profile():
    user = g.current_user
    data = user.to_dict()
    data["capabilities"] = sorted(ROLE_CAPABILITIES[user.role_enum])
    data["session"] = g.session_context.session.to_dict()
    return ok(data)


@system_bp.post("/logout")
@require_auth
def logout():
    """Revoke the bearer token used for this request."""
    user = g.current_user
    session_service.revoke_session(bearer_token())

    emit_safely(
        DatabaseEventSink(ip_address=request.remote_addr),
        level="info",
        module="auth",
        action="logout",
        message=f"User logged out: {user.email}",
        metadata={"user_id": user.id},
        actor_id=user.id,
    )
    return ok(message="Logged out successfully.")
