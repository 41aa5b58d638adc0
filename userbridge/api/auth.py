"""Authentication routes: DB-first login, token validation, user check."""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from userbridge.api.decorators import TokenValidationError, bearer_token, validate_jwt_token
from userbridge.api.payloads import json_object
from userbridge.api.services import services

bp = Blueprint("auth", __name__, url_prefix="/auth")


@bp.route("/login", methods=["POST"])
def login():
    """Authenticate a registered user; ServiceErrors are rendered by the error handlers."""
    payload = json_object(required=False)
    result = services().login.login(payload.get("username"), payload.get("password"))
    current_app.logger.info("Login succeeded for %s", result["user_info"]["username"])
    return jsonify(result), 200


@bp.route("/validate", methods=["POST"])
def validate():
    token = bearer_token()
    if not token:
        return jsonify({"error": "Unauthorized", "message": "Bearer token required"}), 401
    try:
        validate_jwt_token(token)
    except TokenValidationError as exc:
        current_app.logger.info("Token rejected: %s", exc)
        return jsonify({"error": "Unauthorized", "message": str(exc)}), 401
    return jsonify({"valid": True, "message": "Token is valid"}), 200


@bp.route("/user-check/<username>", methods=["GET"])
def user_check(username: str):
    return jsonify(services().login.user_check(username)), 200
