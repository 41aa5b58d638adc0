"""
Provisioning Service Layer: remote-first user provisioning.

Creates the Keycloak account, assigns roles and groups, then mirrors the user
into the local store. Used by both the HTTP API and the CLI.

Flow:
    validate ──> admin token ──> create remote user ──┬─> assign roles  ─┬──> persist locally
                                                      └─> assign groups ┘

Failure semantics:
    - Validation errors never reach the network.
    - A failed remote creation ends the workflow; nothing is written locally.
    - Partial role/group assignment is logged, never fatal.
    - A failed local write after remote success is reported as success with
      a sync warning; the remote account is never rolled back.
"""

from __future__ import annotations
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from userbridge.config.settings import AppConfig
from userbridge.core import audit
from userbridge.core.errors import ErrorCode, SYNC_WARNING_MARKER, classify_provider_error
from userbridge.core.keycloak import GroupService, KeycloakClient, RoleService, UserService
from userbridge.core.models import ProvisioningRequest, ProvisioningResult
from userbridge.core.validators import require, validate_email, validate_name
from userbridge.store import LocalUserService

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], KeycloakClient]


def admin_client_factory(cfg: AppConfig) -> ClientFactory:
    """Return a factory that builds a freshly authenticated admin client on every call."""

    def make_client() -> KeycloakClient:
        client = KeycloakClient(
            cfg.keycloak_url,
            timeout=cfg.keycloak_request_timeout,
            retries=cfg.keycloak_transient_retries,
        )
        client.authenticate_admin(cfg.keycloak_admin, cfg.keycloak_admin_password, cfg.keycloak_admin_realm)
        return client

    return make_client


def validate_request(request: ProvisioningRequest) -> ProvisioningRequest:
    """Check mandatory fields and normalize the request in place.

    Raises:
        ValueError: Missing or malformed field
    """
    request.username = require(request.username, "username")
    request.email = validate_email(request.email)
    require(request.password, "password")
    request.first_name = validate_name(request.first_name, "First name")
    request.last_name = validate_name(request.last_name, "Last name")
    return request


class ProvisioningService:
    """Remote-first provisioning of users with a best-effort local mirror."""

    def __init__(
        self,
        cfg: AppConfig,
        store: LocalUserService,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.cfg = cfg
        self.store = store
        self.client_factory = client_factory or admin_client_factory(cfg)

    def provision_user(
        self,
        request: ProvisioningRequest,
        *,
        operator: str = "api",
        event_type: audit.EventType = "provision_user",
    ) -> ProvisioningResult:
        """Run the whole provisioning workflow for one request.

        Never raises: every terminal state is a ``ProvisioningResult``.
        """
        realm = self.cfg.keycloak_realm

        try:
            validate_request(request)
        except ValueError as exc:
            logger.warning("[provisioning] Rejected request for '%s': %s", request.username, exc)
            result = ProvisioningResult.failed(request, ErrorCode.VALIDATION, str(exc), 400)
            self._audit(event_type, result, operator)
            return result

        request.with_defaults()

        try:
            client = self.client_factory()
            user_id = UserService(client, realm).create_user(
                request.username,
                request.email,
                request.password,
                first_name=request.first_name,
                last_name=request.last_name,
                enabled=request.enabled,
                email_verified=request.email_verified,
            )
        except Exception as exc:
            error = classify_provider_error(exc, username=request.username)
            logger.error("[provisioning] Remote creation of '%s' failed: %s (%s)", request.username, exc, error.code)
            result = ProvisioningResult.failed(request, error.code, error.message, error.status)
            self._audit(event_type, result, operator)
            return result

        roles = RoleService(client, realm, self.cfg.keycloak_role_client_id)
        groups = GroupService(client, realm)
        with ThreadPoolExecutor(max_workers=2) as pool:
            role_future = pool.submit(self._assign_roles, roles, user_id, request)
            group_future = pool.submit(self._assign_groups, groups, user_id, request)
            assigned_roles = role_future.result()
            assigned_groups = group_future.result()

        message = "User created successfully"
        sync_warning = False
        try:
            self.store.create_user(
                request.username,
                request.email,
                request.password,
                role=request.local_role,
                enabled=request.enabled,
                keycloak_user_id=user_id,
            )
        except Exception as exc:
            logger.warning(
                "[provisioning] Remote user '%s' (%s) created but local sync failed: %s",
                request.username, user_id, exc,
            )
            message = f"{message} {SYNC_WARNING_MARKER}"
            sync_warning = True

        result = ProvisioningResult(
            success=True,
            username=request.username,
            email=request.email,
            keycloak_user_id=user_id,
            assigned_roles=assigned_roles,
            assigned_groups=assigned_groups,
            message=message,
            sync_warning=sync_warning,
        )
        logger.info(
            "[provisioning] User '%s' provisioned (id=%s, roles=%s, groups=%s)",
            request.username, user_id, assigned_roles, assigned_groups,
        )
        self._audit(event_type, result, operator)
        return result

    def provision_system_account(
        self, username: str, email: str, password: str, *, operator: str = "api"
    ) -> ProvisioningResult:
        """Provision a system-integration account with the privileged preset."""
        request = ProvisioningRequest.for_system_account(username, email, password)
        return self.provision_user(request, operator=operator, event_type="provision_system_account")

    def check_admin_health(self) -> bool:
        """Tell whether an admin token can be obtained right now."""
        try:
            self.client_factory()
            return True
        except Exception as exc:
            logger.warning("[provisioning] Admin health check failed: %s", exc)
            return False

    @staticmethod
    def _assign_roles(roles: RoleService, user_id: str, request: ProvisioningRequest) -> list[str]:
        if not request.roles:
            return []
        try:
            assigned = roles.assign_roles_to_user(user_id, request.roles)
        except Exception as exc:
            logger.warning("[provisioning] Role assignment for '%s' failed: %s", request.username, exc)
            return []
        if len(assigned) < len(set(request.roles)):
            logger.warning(
                "[provisioning] Partial role assignment for '%s': requested %s, assigned %s",
                request.username, request.roles, assigned,
            )
        return assigned

    @staticmethod
    def _assign_groups(groups: GroupService, user_id: str, request: ProvisioningRequest) -> list[str]:
        if not request.groups:
            return []
        try:
            return groups.assign_groups_to_user(user_id, request.groups)
        except Exception as exc:
            logger.warning("[provisioning] Group assignment for '%s' failed: %s", request.username, exc)
            return []

    def _audit(self, event_type: audit.EventType, result: ProvisioningResult, operator: str) -> None:
        details = {
            "keycloak_user_id": result.keycloak_user_id,
            "roles": result.assigned_roles,
            "groups": result.assigned_groups,
        }
        if result.sync_warning:
            details["warning"] = ErrorCode.PARTIAL_SYNC_WARNING
        if not result.success:
            details["error_code"] = result.error_code
        audit.safe_log_event(
            event_type,
            result.username,
            operator=operator,
            realm=self.cfg.keycloak_realm,
            details=details,
            success=result.success,
        )
