"""Keycloak-specific exceptions for error handling."""


class KeycloakError(Exception):
    """Base exception for all Keycloak operations."""
    pass


class KeycloakAPIError(KeycloakError):
    """HTTP error from Keycloak (token endpoint or Admin API).

    Attributes:
        status_code: HTTP status code
        message: Error message from response
        endpoint: API endpoint that failed
    """

    def __init__(self, status_code: int, message: str, endpoint: str):
        self.status_code = status_code
        self.message = message
        self.endpoint = endpoint
        super().__init__(f"[{status_code}] {endpoint}: {message}")


class KeycloakUnavailableError(KeycloakError):
    """Transport failure: Keycloak could not be reached or timed out."""

    def __init__(self, endpoint: str, reason: str):
        self.endpoint = endpoint
        self.reason = reason
        super().__init__(f"Keycloak unavailable ({endpoint}): {reason}")


class UserAlreadyExistsError(KeycloakError):
    """User creation failed - username or email already exists."""

    def __init__(self, username: str, detail: str = ""):
        self.username = username
        self.detail = detail
        super().__init__(f"User already exists: {username}")


class UserIdLookupError(KeycloakError):
    """User was created but its id could not be resolved afterwards."""

    def __init__(self, username: str):
        self.username = username
        super().__init__("user id lookup failed")


class RoleAlreadyExistsError(KeycloakError):
    """Role creation failed with 409 - a role with that name exists."""

    def __init__(self, role_name: str):
        self.role_name = role_name
        super().__init__(f"Role already exists: {role_name}")


class GroupNotFoundError(KeycloakError):
    """Group does not exist in realm."""
    pass
