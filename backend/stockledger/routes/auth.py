# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

SECURITY FEATURES:
- Terminal lockout after repeated failed attempts (429 while locked)
- One live session; its id is the Bearer token for protected routes
- Inactivity expiry is enforced on every authenticated request
- User creation and the security log are admin-only
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..extensions import get_guard
from ..permissions import ROLE_CLERK
from ..services.inventory_store import StorageError


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and open the terminal session.

    Returns the user and session id on success. Wrong credentials answer 401
    with the attempts left; a locked terminal answers 429.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
        return jsonify({"error": "username and password required"}), 400

    try:
        result = get_guard().authenticate(
            username,
            password,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
    except StorageError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Login failed")
        return jsonify({"error": "Internal server error"}), 500

    if result.success:
        return jsonify({
            "message": result.message,
            "user": result.user,
            "token": result.session_id,
        }), 200

    body = {
        "error": result.message,
        "locked": result.is_locked_out,
        "remaining_attempts": result.remaining_attempts,
    }
    if result.is_locked_out:
        status = get_guard().get_lockout_status()
        body["retry_after_seconds"] = status["seconds_until_unlock"]
        body["retry_after_minutes"] = status["minutes_until_unlock"]
        return jsonify(body), 429
    return jsonify(body), 401


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        get_guard().logout()
    except StorageError as e:
        return jsonify({"error": str(e)}), 503
    return jsonify({"message": "Logged out successfully"}), 200


@auth_bp.get("/session")
@require_auth
def session_route():
    info = get_guard().get_session_info()
    if info is None:
        return jsonify({"error": "Invalid or expired session"}), 401
    return jsonify(info.to_dict()), 200


@auth_bp.get("/lockout-status")
def lockout_status_route():
    try:
        return jsonify(get_guard().get_lockout_status()), 200
    except StorageError as e:
        return jsonify({"error": str(e)}), 503


@auth_bp.get("/permissions")
@require_auth
def permissions_route():
    perms = get_guard().get_user_permissions()
    return jsonify({"user": g.current_user, **perms.to_dict()}), 200


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    data = request.get_json(silent=True) or {}
    old_password = data.get("old_password")
    new_password = data.get("new_password")
    if not isinstance(old_password, str) or not isinstance(new_password, str):
        return jsonify({"error": "old_password and new_password required"}), 400

    try:
        result = get_guard().change_password(old_password, new_password)
    except StorageError as e:
        return jsonify({"error": str(e)}), 503

    if not result.success:
        return jsonify({"error": result.message}), 400
    return jsonify(result.to_dict()), 200


@auth_bp.post("/users")
@require_auth
@require_permission("MANAGE_USERS")
def create_user_route():
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")
    role = data.get("role") or ROLE_CLERK

    try:
        result = get_guard().add_user(username, password, role)
    except StorageError as e:
        return jsonify({"error": str(e)}), 503

    if not result.success:
        status = 409 if result.message == "User already exists" else 400
        return jsonify({"error": result.message}), status
    return jsonify(result.to_dict()), 201


@auth_bp.get("/security-log")
@require_auth
@require_permission("VIEW_SECURITY_LOG")
def security_log_route():
    limit = request.args.get("limit", default=100, type=int)
    events = get_guard().get_security_log(limit=limit)
    return jsonify({"events": events, "count": len(events)}), 200
