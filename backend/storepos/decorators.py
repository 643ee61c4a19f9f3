# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import AuthorizationError, error_response
from .permissions import ActorContext, authorize
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer session and establish the actor context.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.actor: ActorContext handed to core services
    - g.session_token: the plaintext token (used by logout)

    Returns 401 if the header is missing or the token is invalid/expired,
    or the user is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.actor = ActorContext.for_user(context.user)
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """
    Require a specific permission.

    This is the single capability check for the operation; services trust
    the ActorContext they receive.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not hasattr(g, "actor"):
                return jsonify({"error": "Authentication required"}), 401

            try:
                authorize(g.actor, permission_code)
            except AuthorizationError as e:
                return error_response(e)

            return f(*args, **kwargs)

        return decorated_function
    return decorator
