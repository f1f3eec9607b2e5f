"""Bearer-token helpers for the admin API."""
from __future__ import annotations

from functools import wraps

from flask import current_app, g, jsonify, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from .extensions import db
from .models import Admin

ADMIN_ROLES = ("admin", "owner")


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt="auth-token")


def build_token(admin: Admin) -> str:
    return _serializer().dumps({"admin_id": admin.admin_id, "role": admin.role})


def get_jwt_identity() -> int | None:
    """Extract the admin id from the ``Authorization: Bearer`` header.

    Returns None when the header is missing, malformed, tampered with or
    older than ``TOKEN_MAX_AGE`` seconds.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:]
    try:
        payload = _serializer().loads(token, max_age=current_app.config["TOKEN_MAX_AGE"])
    except SignatureExpired:
        current_app.logger.info("Rejected expired auth token")
        return None
    except BadSignature:
        return None
    if not isinstance(payload, dict):
        return None
    return payload.get("admin_id")


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(admin: Admin, password: str) -> bool:
    return check_password_hash(admin.password_hash, password)


def token_required(view):
    """Reject the request with 401 unless it carries a token for an active admin."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        admin_id = get_jwt_identity()
        if admin_id is None:
            return jsonify({"error": "unauthorized", "message": "Authentication required"}), 401

        admin = db.session.get(Admin, admin_id)
        if admin is None or not admin.is_active:
            return jsonify({"error": "unauthorized", "message": "Invalid token or account inactive"}), 401

        g.current_admin = admin
        return view(*args, **kwargs)

    return wrapper


def admin_required(view):
    @token_required
    @wraps(view)
    def wrapper(*args, **kwargs):
        if g.current_admin.role not in ADMIN_ROLES:
            return jsonify({"error": "forbidden", "message": "Admin access required"}), 403
        return view(*args, **kwargs)

    return wrapper
