"""Role-Based Access Control helpers over decoded access-token claims."""
from __future__ import annotations

# Roles Keycloak puts on every account; never meaningful for authorization.
BUILTIN_ROLES = {"offline_access", "uma_authorization"}


def realm_roles(claims: dict) -> list[str]:
    """Realm roles of a token, without Keycloak's built-in and default roles."""
    realm_access = claims.get("realm_access") if isinstance(claims, dict) else None
    if not isinstance(realm_access, dict):
        return []
    return filter_authorization_roles(realm_access.get("roles", []))


def filter_authorization_roles(roles: list[str]) -> list[str]:
    return [
        role for role in roles
        if role and role.lower() not in BUILTIN_ROLES and not role.lower().startswith("default-roles-")
    ]


def has_any_role(roles: list[str], required: tuple[str, ...]) -> bool:
    """Case-insensitive check that at least one required role is present."""
    wanted = {role.lower() for role in required}
    return any(role.lower() in wanted for role in roles)


def current_username(claims: dict) -> str:
    for key in ("preferred_username", "email", "sub"):
        value = claims.get(key)
        if isinstance(value, str) and value:
            return value
    return ""
