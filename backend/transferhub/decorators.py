# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User


ACTOR_HEADER = "X-User-Id"


def require_actor(f):
    """
    Resolve the acting user for a mutating request.

    Authentication happens upstream; this only maps the X-User-Id header to
    an active User and stores it as g.current_user.

    Returns 401 if the header is missing, malformed, or names an unknown or
    deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ACTOR_HEADER, "").strip()
        if not raw:
            return jsonify({"error": "User not authenticated"}), 401

        try:
            user_id = int(raw)
        except ValueError:
            return jsonify({"error": "User not authenticated"}), 401

        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            return jsonify({"error": "User not authenticated"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function
