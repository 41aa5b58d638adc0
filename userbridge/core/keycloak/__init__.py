"""Keycloak token endpoint and Admin API client library.

Architecture:
- client.py: HTTP client with admin authentication, timeouts and retries
- users.py: User creation and lookup
- roles.py: Realm role definitions, role mappings and role snapshots
- groups.py: Group lookup/creation and membership
- exceptions.py: Typed exceptions for error handling

Usage:
    from userbridge.core.keycloak import KeycloakClient, UserService

    client = KeycloakClient("http://keycloak:8080")
    client.authenticate_admin("admin", "password")

    users = UserService(client, "demo")
    user_id = users.create_user("alice", "alice@example.com", "S3cret!")
"""
from .client import (
    KeycloakClient,
    REQUEST_TIMEOUT,
)
from .exceptions import (
    KeycloakError,
    KeycloakAPIError,
    KeycloakUnavailableError,
    UserAlreadyExistsError,
    UserIdLookupError,
    RoleAlreadyExistsError,
    GroupNotFoundError,
)
from .users import UserService, build_user_representation, is_duplicate_error
from .roles import RoleService, DEFAULT_ROLES
from .groups import GroupService

__all__ = [
    # Client
    "KeycloakClient",
    "REQUEST_TIMEOUT",

    # Exceptions
    "KeycloakError",
    "KeycloakAPIError",
    "KeycloakUnavailableError",
    "UserAlreadyExistsError",
    "UserIdLookupError",
    "RoleAlreadyExistsError",
    "GroupNotFoundError",

    # Services
    "UserService",
    "RoleService",
    "GroupService",
    "DEFAULT_ROLES",

    # Helpers
    "build_user_representation",
    "is_duplicate_error",
]
