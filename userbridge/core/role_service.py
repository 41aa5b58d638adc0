"""Role workflows behind ``/roles/*`` and the CLI role commands."""
from __future__ import annotations
import logging
from typing import Optional

from userbridge.config.settings import AppConfig
from userbridge.core import audit
from userbridge.core.errors import ErrorCode, ServiceError, classify_provider_error
from userbridge.core.keycloak import KeycloakClient, RoleService, UserService
from userbridge.core.models import RoleDescriptor, RoleResult, UserRoleSnapshot
from userbridge.core.provisioning_service import ClientFactory, admin_client_factory

logger = logging.getLogger(__name__)


class RoleManagementService:
    def __init__(self, cfg: AppConfig, client_factory: Optional[ClientFactory] = None):
        self.cfg = cfg
        self.client_factory = client_factory or admin_client_factory(cfg)

    def _roles(self, client: KeycloakClient) -> RoleService:
        return RoleService(client, self.cfg.keycloak_realm, self.cfg.keycloak_role_client_id)

    def create_role(self, role_name: str, description: str = "", *, operator: str = "api") -> RoleResult:
        """Create one realm role.

        Raises:
            ServiceError: ValidationError for a blank name, ProviderConflict
                when the role exists, or the classified provider failure
        """
        if not isinstance(role_name, (str, type(None))):
            raise ServiceError(ErrorCode.VALIDATION, "roleName must be a string", 400)
        role_name = (role_name or "").strip()
        if not role_name:
            raise ServiceError(ErrorCode.VALIDATION, "roleName is required", 400)

        try:
            role_id = self._roles(self.client_factory()).create_role(role_name, description or "")
        except Exception as exc:
            error = classify_provider_error(exc)
            audit.safe_log_event("role_create", "", operator=operator, realm=self.cfg.keycloak_realm,
                                 details={"role": role_name, "error_code": error.code}, success=False)
            raise error from exc

        role = RoleDescriptor(name=role_name, description=description or "", id=role_id)
        audit.safe_log_event("role_create", "", operator=operator, realm=self.cfg.keycloak_realm,
                             details={"role": role.name, "role_id": role.id})
        return RoleResult(
            success=True,
            role_name=role.name,
            role_id=role.id,
            description=role.description,
            message="Role created successfully",
        )

    def create_default_roles(self, *, operator: str = "api") -> dict[str, str]:
        """Create the baseline roles. Only a failed admin token surfaces as an error."""
        try:
            client = self.client_factory()
        except Exception as exc:
            raise classify_provider_error(exc) from exc
        outcome = self._roles(client).create_default_roles()
        audit.safe_log_event("role_defaults", "", operator=operator, realm=self.cfg.keycloak_realm,
                             details={"outcome": outcome})
        return outcome

    def assign_roles(
        self,
        username: str,
        role_names: list[str],
        remove_existing: bool = False,
        *,
        operator: str = "api",
    ) -> RoleResult:
        """Assign realm roles to a remote user found by username.

        With ``remove_existing`` the user's current realm roles are dropped
        first; removal failures are ignored.
        """
        if not isinstance(username, (str, type(None))):
            raise ServiceError(ErrorCode.VALIDATION, "username must be a string", 400)
        if not isinstance(role_names, (list, tuple, type(None))) or any(
            name is not None and not isinstance(name, str) for name in role_names or []
        ):
            raise ServiceError(ErrorCode.VALIDATION, "roles must be a list of strings", 400, username)
        username = (username or "").strip()
        role_names = [name.strip() for name in role_names or [] if name and name.strip()]
        if not username:
            raise ServiceError(ErrorCode.VALIDATION, "username is required", 400)
        if not role_names:
            raise ServiceError(ErrorCode.VALIDATION, "roles must not be empty", 400, username)

        try:
            client = self.client_factory()
            user_id = UserService(client, self.cfg.keycloak_realm).get_user_id(username)
            if not user_id:
                raise ServiceError(ErrorCode.NOT_FOUND, f"User not found: {username}", 404, username)
            roles = self._roles(client)
            if remove_existing:
                assigned = roles.replace_user_realm_roles(user_id, role_names)
            else:
                assigned = roles.assign_roles_to_user(user_id, role_names)
        except Exception as exc:
            error = classify_provider_error(exc, username=username)
            audit.safe_log_event("role_assign", username, operator=operator, realm=self.cfg.keycloak_realm,
                                 details={"roles": role_names, "error_code": error.code}, success=False)
            raise error from exc

        audit.safe_log_event("role_assign", username, operator=operator, realm=self.cfg.keycloak_realm,
                             details={"roles": assigned, "remove_existing": remove_existing})
        return RoleResult(
            success=True,
            role_name=", ".join(assigned),
            message=f"Assigned {len(assigned)} role(s) to {username}",
            assigned_roles=assigned,
        )

    def get_user_roles(self, username: str) -> UserRoleSnapshot:
        """Role snapshot of a remote user; the snapshot itself never fails."""
        username = (username or "").strip()
        if not username:
            raise ServiceError(ErrorCode.VALIDATION, "username is required", 400)
        try:
            client = self.client_factory()
            user_id = UserService(client, self.cfg.keycloak_realm).get_user_id(username)
        except Exception as exc:
            raise classify_provider_error(exc, username=username) from exc
        if not user_id:
            raise ServiceError(ErrorCode.NOT_FOUND, f"User not found: {username}", 404, username)
        return self._roles(client).get_user_role_snapshot(user_id, username)

    def check_admin_health(self) -> bool:
        try:
            self.client_factory()
            return True
        except Exception as exc:
            logger.warning("[roles] Admin health check failed: %s", exc)
            return False
