"""Role routes: realm role creation, assignment and per-user snapshots."""
from __future__ import annotations

from flask import Blueprint, jsonify

from userbridge.api.payloads import json_object, optional_text
from userbridge.api.services import services
from userbridge.core.errors import ErrorCode, ServiceError
from userbridge.core.models import RoleResult

bp = Blueprint("roles", __name__, url_prefix="/roles")


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return bool(value)


@bp.route("/create", methods=["POST"])
def create_role():
    payload = json_object(required=False)
    role_name = optional_text(payload, "roleName")
    description = optional_text(payload, "description")
    try:
        result = services().roles.create_role(role_name, description or "")
    except ServiceError as exc:
        return jsonify(RoleResult.failed(role_name, exc.code, exc.message).to_dict()), exc.status
    return jsonify(result.to_dict()), 201


@bp.route("/create-defaults", methods=["POST"])
def create_default_roles():
    try:
        outcome = services().roles.create_default_roles()
    except ServiceError as exc:
        return jsonify({"success": False, "error": exc.code, "message": exc.message}), 500
    return jsonify({"success": True, "message": "Default roles processed", "roles": outcome}), 200


@bp.route("/assign", methods=["POST"])
def assign_roles():
    payload = json_object(required=False)
    username = optional_text(payload, "username")
    roles = payload.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    if not isinstance(roles, list) or not all(isinstance(name, str) for name in roles):
        raise ServiceError(ErrorCode.VALIDATION, "roles must be a list of strings", 400, username)
    try:
        result = services().roles.assign_roles(
            username,
            roles,
            _as_bool(payload.get("removeExistingRoles", False)),
        )
    except ServiceError as exc:
        failed = RoleResult.failed(", ".join(roles) or None, exc.code, exc.message)
        return jsonify(failed.to_dict()), exc.status
    return jsonify(result.to_dict()), 200


@bp.route("/user/<username>", methods=["GET"])
def user_roles(username: str):
    snapshot = services().roles.get_user_roles(username)
    return jsonify(snapshot.to_dict()), 200


@bp.route("/admin/health", methods=["GET"])
def admin_health():
    if services().roles.check_admin_health():
        return jsonify({"status": "UP", "keycloak_admin": "reachable"}), 200
    return jsonify({"status": "DOWN", "keycloak_admin": "unreachable"}), 503
