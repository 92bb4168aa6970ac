# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'request_context')


def current_context():
    """The RequestContext established by require_auth for this request."""
    return g.request_context


def current_user_id() -> int | None:
    ctx = getattr(g, 'request_context', None)
    return ctx.user_id if ctx else None


def require_auth(f):
    """
    Require a valid bearer token and establish the request context.

    Sets:
    - g.request_context: RequestContext(user, session, permissions)
    - g.current_user: shortcut to the authenticated User

    Returns 401 if the header is missing, or the token is invalid, expired,
    revoked or belongs to a deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.request_context = context
        g.current_user = context.user

        return f(*args, **kwargs)

    return decorated_function


def require_permission(resource: str, action: str = "read"):
    """
    Require an action on a resource. Admins always pass.

    Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if not g.request_context.can(resource, action):
                return jsonify({
                    "error": "Permission denied",
                    "resource": resource,
                    "action": action,
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator


def require_admin(f):
    """Require the admin role. Must be stacked under @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        if not g.request_context.user.is_admin:
            return jsonify({"error": "Admin role required"}), 403
        return f(*args, **kwargs)

    return decorated_function
