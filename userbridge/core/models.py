"""Request/response models shared by the provisioning, login and role workflows.

Plain dataclasses with no Flask or SQLAlchemy dependency, so the CLI and the
Keycloak client library can use them directly.
"""
from __future__ import annotations
import datetime
from dataclasses import dataclass, field
from typing import Any, Optional

DEFAULT_USER_ROLES = ("user", "manage-account")

SYSTEM_ACCOUNT_ROLES = ("delete-account", "manage-account")
SYSTEM_ACCOUNT_GROUPS = ("pulsar_system",)
SYSTEM_ACCOUNT_FIRST_NAME = "Pulsar"
SYSTEM_ACCOUNT_LAST_NAME = "System"

LOCAL_ROLES = ("USER", "ADMIN", "MANAGER")


def _utcnow_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z")


def _as_text(value: Any, field: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{field} must be a string")
    return value


def _as_name_list(value: Any, field: str = "names") -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"{field} must be a list of strings")
    if any(item is not None and not isinstance(item, str) for item in value):
        raise ValueError(f"{field} must be a list of strings")
    return [item.strip() for item in value if item and item.strip()]


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


@dataclass
class ProvisioningRequest:
    """Everything needed to create a remote account and its local mirror."""

    username: str
    email: str
    password: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    enabled: bool = True
    email_verified: bool = True
    roles: list[str] = field(default_factory=list)
    groups: list[str] = field(default_factory=list)
    local_role: str = "USER"

    @classmethod
    def from_payload(cls, payload: dict) -> "ProvisioningRequest":
        """Build a request from the JSON body of ``POST /users/create``.

        Raises:
            ValueError: A field has the wrong JSON type
        """
        payload = payload or {}
        return cls(
            username=(_as_text(payload.get("username"), "username") or "").strip(),
            email=(_as_text(payload.get("email"), "email") or "").strip(),
            password=_as_text(payload.get("password"), "password") or "",
            first_name=_as_text(payload.get("firstName"), "firstName") or None,
            last_name=_as_text(payload.get("lastName"), "lastName") or None,
            enabled=_as_bool(payload.get("enabled"), True),
            email_verified=_as_bool(payload.get("emailVerified"), True),
            roles=_as_name_list(payload.get("roles"), "roles"),
            groups=_as_name_list(payload.get("groups"), "groups"),
        )

    @classmethod
    def for_system_account(cls, username: str, email: str, password: str) -> "ProvisioningRequest":
        """Preset used for system-integration accounts."""
        return cls(
            username=(username or "").strip(),
            email=(email or "").strip(),
            password=password or "",
            first_name=SYSTEM_ACCOUNT_FIRST_NAME,
            last_name=SYSTEM_ACCOUNT_LAST_NAME,
            roles=list(SYSTEM_ACCOUNT_ROLES),
            groups=list(SYSTEM_ACCOUNT_GROUPS),
            local_role="ADMIN",
        )

    def with_defaults(self) -> "ProvisioningRequest":
        """Substitute the default role set when neither roles nor groups are given."""
        if not self.roles and not self.groups:
            self.roles = list(DEFAULT_USER_ROLES)
        return self


@dataclass
class ProvisioningResult:
    success: bool
    username: str
    email: str
    keycloak_user_id: Optional[str] = None
    assigned_roles: list[str] = field(default_factory=list)
    assigned_groups: list[str] = field(default_factory=list)
    message: str = ""
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    sync_warning: bool = False
    created_at: str = field(default_factory=_utcnow_iso)
    status: int = 201

    @classmethod
    def failed(cls, request: ProvisioningRequest, code: str, message: str, status: int) -> "ProvisioningResult":
        return cls(
            success=False,
            username=request.username,
            email=request.email,
            message="User provisioning failed",
            error_message=message,
            error_code=code,
            status=status,
        )

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "keycloakUserId": self.keycloak_user_id,
            "username": self.username,
            "email": self.email,
            "assignedRoles": list(self.assigned_roles),
            "assignedGroups": list(self.assigned_groups),
            "message": self.message,
            "createdAt": self.created_at,
            "syncWarning": self.sync_warning,
        }
        if not self.success:
            data["errorMessage"] = self.error_message
            data["errorCode"] = self.error_code
        return data


@dataclass
class RoleDescriptor:
    name: str
    description: str = ""
    id: Optional[str] = None


@dataclass
class RoleResult:
    """Outcome of a role endpoint call (create, assign)."""

    success: bool
    role_name: Optional[str] = None
    role_id: Optional[str] = None
    description: Optional[str] = None
    message: str = ""
    assigned_roles: list[str] = field(default_factory=list)
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    response_time: str = field(default_factory=_utcnow_iso)

    @classmethod
    def failed(cls, role_name: Optional[str], code: str, message: str) -> "RoleResult":
        return cls(success=False, role_name=role_name, message="Role operation failed",
                   error_message=message, error_code=code)

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "roleName": self.role_name,
            "roleId": self.role_id,
            "description": self.description,
            "message": self.message,
            "responseTime": self.response_time,
        }
        if self.assigned_roles:
            data["assignedRoles"] = list(self.assigned_roles)
        if not self.success:
            data["errorMessage"] = self.error_message
            data["errorCode"] = self.error_code
        return data


@dataclass
class UserRoleSnapshot:
    """Realm roles, role client roles and groups of one remote account."""

    username: str
    keycloak_user_id: str
    realm_roles: list[str] = field(default_factory=list)
    client_roles: list[str] = field(default_factory=list)
    groups: list[str] = field(default_factory=list)

    @property
    def all_roles(self) -> list[str]:
        return list(dict.fromkeys([*self.realm_roles, *self.client_roles]))

    def has_role(self, role: str) -> bool:
        wanted = role.lower()
        return any(r.lower() == wanted for r in self.all_roles)

    @property
    def has_admin_role(self) -> bool:
        return self.has_role("admin")

    @property
    def has_manager_role(self) -> bool:
        return self.has_role("manager")

    @property
    def has_user_role(self) -> bool:
        return self.has_role("user")

    def to_dict(self) -> dict:
        return {
            "username": self.username,
            "keycloakUserId": self.keycloak_user_id,
            "realmRoles": list(self.realm_roles),
            "clientRoles": list(self.client_roles),
            "groups": list(self.groups),
            "allRoles": self.all_roles,
            "hasAdminRole": self.has_admin_role,
            "hasManagerRole": self.has_manager_role,
            "hasUserRole": self.has_user_role,
        }
