# Overview: Flask API routes for login, logout, and the current identity.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..services import auth_service, session_service
from storepos.time_utils import to_utc_z

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
        return jsonify({"error": "username and password required"}), 400

    user = auth_service.authenticate(username, password)
    if user is None:
        current_app.logger.info("Failed login for %r", username)
        return jsonify({"error": "Invalid credentials"}), 401

    session, token = session_service.create_session(user.id)
    return jsonify({
        "token": token,
        "expires_at": to_utc_z(session.expires_at),
        "user": user.to_dict(),
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout():
    session_service.revoke_session(g.session_token)
    return jsonify({"ok": True}), 200


@auth_bp.get("/me")
@require_auth
def me():
    return jsonify({
        "user": g.current_user.to_dict(),
        "permissions": sorted(g.actor.permissions),
    }), 200
