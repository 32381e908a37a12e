# Overview: Request and permission decorators for API routes.

from functools import wraps

from flask import g, request

from .permissions import role_has_capability
from .responses import fail
from .services import session_service
from .services.event_sink import DatabaseEventSink, emit_safely


def _is_authenticated() -> bool:
    return hasattr(g, "current_user") and hasattr(g, "session_context")


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip()


def require_auth(f):
    """
    Require a valid bearer token.

    Sets on Flask g:
    - g.current_user: the authenticated User
    - g.session_context: the full SessionContext

    Returns 401 if the Authorization header is missing, or the token is
    unknown, expired, idle, revoked or belongs to a deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if token is None:
            return fail("Authentication required", 401)

        context = session_service.validate_session(token)

        if not context:
            return fail("Invalid or expired token", 401)

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_permission(capability: str):
    """
    Require a capability of the authenticated user's role.

    Denials are recorded as a warn event (module=auth, action=permission_denied).
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return fail("Authentication required", 401)

            user = g.current_user
            if not role_has_capability(user.role, capability):
                emit_safely(
                    DatabaseEventSink(ip_address=request.remote_addr),
                    level="warn",
                    module="auth",
                    action="permission_denied",
                    message=f"Permission denied: {capability}",
                    metadata={"capability": capability, "resource": request.path, "method": request.method},
                    actor_id=user.id,
                )
                return fail(
                    "Permission denied",
                    403,
                    {"required_permission": capability},
                )

            return f(*args, **kwargs)

        return decorated_function
    return decorator
