"""User routes: remote provisioning plus local user management."""
from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from userbridge.api.decorators import require_role, require_token
from userbridge.api.payloads import json_object
from userbridge.api.services import services
from userbridge.core import audit
from userbridge.core.errors import ErrorCode, ServiceError
from userbridge.core.models import ProvisioningRequest, ProvisioningResult

bp = Blueprint("users", __name__, url_prefix="/users")


def _operator() -> str:
    return g.get("current_username") or "api"


def _text(payload: dict, key: str) -> str:
    value = payload.get(key)
    return value if isinstance(value, str) else ""


# ─────────────────────────────────────────────────────────────────────────────
# Provisioning (Keycloak first, local mirror second)
# ─────────────────────────────────────────────────────────────────────────────
@bp.route("/create", methods=["POST"])
def create_user():
    payload = json_object()
    try:
        provisioning_request = ProvisioningRequest.from_payload(payload)
    except ValueError as exc:
        rejected = ProvisioningResult(
            success=False,
            username=_text(payload, "username"),
            email=_text(payload, "email"),
            message="User provisioning failed",
            error_message=str(exc),
            error_code=ErrorCode.VALIDATION,
            status=400,
        )
        return jsonify(rejected.to_dict()), rejected.status
    result = services().provisioning.provision_user(provisioning_request)
    return jsonify(result.to_dict()), result.status


@bp.route("/create-pulsar-system", methods=["POST"])
def create_system_account():
    """Provision a system-integration account from query (or form) parameters."""
    params = request.values
    result = services().provisioning.provision_system_account(
        params.get("username", ""),
        params.get("email", ""),
        params.get("password", ""),
    )
    return jsonify(result.to_dict()), result.status


@bp.route("/admin/health", methods=["GET"])
def admin_health():
    if services().provisioning.check_admin_health():
        return jsonify({"status": "UP", "keycloak_admin": "reachable"}), 200
    return jsonify({"status": "DOWN", "keycloak_admin": "unreachable"}), 503


# ─────────────────────────────────────────────────────────────────────────────
# Local user management
# ─────────────────────────────────────────────────────────────────────────────
@bp.route("", methods=["GET"])
@require_role("admin")
def list_users():
    return jsonify(services().local_users.list_users()), 200


@bp.route("", methods=["POST"])
@require_role("admin")
def create_local_user():
    payload = json_object()
    user = services().local_users.create_user(
        payload.get("username"),
        payload.get("email"),
        payload.get("password"),
        role=payload.get("role") or "USER",
        enabled=payload.get("enabled", True),
    )
    current_app.logger.info("Local user %s created by %s", user["username"], _operator())
    audit.safe_log_event("local_user_create", user["username"], operator=_operator(),
                         details={"id": user["id"], "role": user["role"]})
    return jsonify(user), 201


@bp.route("/me", methods=["GET"])
@require_token
def me():
    user = services().local_users.find_by_username(g.current_username)
    if user is None:
        raise ServiceError(ErrorCode.NOT_FOUND, "No local record for this account", 404, g.current_username)
    data = user.to_dict()
    data["token_roles"] = g.token_roles
    return jsonify(data), 200


@bp.route("/<int:user_id>", methods=["GET"])
@require_role("admin")
def get_user(user_id: int):
    return jsonify(services().local_users.get_user(user_id)), 200


@bp.route("/<int:user_id>", methods=["PUT"])
@require_role("admin")
def update_user(user_id: int):
    payload = json_object()
    user = services().local_users.update_user(user_id, payload)
    current_app.logger.info("Local user %s updated by %s", user_id, _operator())
    audit.safe_log_event("local_user_update", user["username"], operator=_operator(),
                         details={"id": user_id, "changes": sorted(payload)})
    return jsonify(user), 200


@bp.route("/<int:user_id>", methods=["DELETE"])
@require_role("admin")
def delete_user(user_id: int):
    services().local_users.delete_user(user_id)
    current_app.logger.info("Local user %s deleted by %s", user_id, _operator())
    audit.safe_log_event("local_user_delete", "", operator=_operator(), details={"id": user_id})
    return "", 204
