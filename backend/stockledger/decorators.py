# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import get_guard
from .permissions import validate_permission_code


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a live session.

    Sets the following Flask g attributes:
    - g.current_user: {"username", "role"} of the session holder
    - g.session_id: the presented session id

    SECURITY: Returns 401 if:
    - No Authorization header
    - The id is not the terminal's live session
    - The session ran out from inactivity (auto-logout happens here)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        guard = get_guard()
        if not guard.validate_session(token):
            if guard.last_logout_was_automatic:
                return jsonify({"error": "Session expired due to inactivity"}), 401
            return jsonify({"error": "Invalid or expired session"}), 401

        g.current_user = guard.get_current_user()
        g.session_id = token

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require a specific permission of the session holder's role."""
    if not validate_permission_code(permission_code):
        raise ValueError(f"Unknown permission code: {permission_code}")

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not hasattr(g, "current_user") or g.current_user is None:
                return jsonify({"error": "Authentication required"}), 401

            if not get_guard().get_user_permissions().has(permission_code):
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                    "message": f"Missing permission: {permission_code}",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
