"""Keycloak user management operations."""
from __future__ import annotations
import logging
from typing import Optional

from .client import KeycloakClient
from .exceptions import KeycloakAPIError, UserAlreadyExistsError, UserIdLookupError

logger = logging.getLogger(__name__)


def build_user_representation(
    username: str,
    email: str,
    password: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    enabled: bool = True,
    email_verified: bool = True,
) -> dict:
    """Build the Keycloak UserRepresentation for a new account.

    The password is attached as a single, non-temporary credential so the user
    can log in right away.
    """
    return {
        "username": username,
        "email": email,
        "firstName": first_name,
        "lastName": last_name,
        "enabled": enabled,
        "emailVerified": email_verified,
        "credentials": [
            {"type": "password", "value": password, "temporary": False},
        ],
    }


def is_duplicate_error(exc: KeycloakAPIError) -> bool:
    """Tell whether a Keycloak API error means "already exists".

    409 is what Keycloak answers for duplicate username/email; some versions
    answer 400 with a "... exists" message instead.
    """
    if exc.status_code == 409:
        return True
    return 400 <= exc.status_code < 500 and "exists" in (exc.message or "").lower()


class UserService:
    """Service for managing Keycloak users in one realm."""

    def __init__(self, client: KeycloakClient, realm: str):
        """Initialize user service.

        Args:
            client: Authenticated Keycloak client
            realm: Realm name
        """
        self.client = client
        self.realm = realm

    def get_user_by_username(self, username: str) -> Optional[dict]:
        """Return the user representation that exactly matches the username.

        Keycloak stores usernames lowercased, so the match ignores case.

        Returns:
            User representation or None if not found
        """
        resp = self.client.get(
            f"/admin/realms/{self.realm}/users",
            params={"username": username, "exact": "true"},
        )
        wanted = username.lower()
        for user in resp.json() or []:
            if (user.get("username") or "").lower() == wanted:
                return user
        return None

    def get_user_id(self, username: str) -> Optional[str]:
        user = self.get_user_by_username(username)
        return user.get("id") if user else None

    def create_user(
        self,
        username: str,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        enabled: bool = True,
        email_verified: bool = True,
    ) -> str:
        """Create a remote account and return its Keycloak id.

        The creation response carries no body we rely on; the id is resolved
        with a follow-up lookup by username.

        Raises:
            UserAlreadyExistsError: Username or email already taken
            UserIdLookupError: Creation answered 2xx but the user cannot be found
            KeycloakAPIError: Any other HTTP failure
            KeycloakUnavailableError: Transport failure
        """
        payload = build_user_representation(
            username, email, password, first_name, last_name, enabled, email_verified
        )
        try:
            self.client.post(f"/admin/realms/{self.realm}/users", json=payload)
        except KeycloakAPIError as exc:
            if is_duplicate_error(exc):
                logger.warning("[joiner] User '%s' already exists in realm '%s'", username, self.realm)
                raise UserAlreadyExistsError(username, exc.message) from exc
            raise

        user_id = self.get_user_id(username)
        if not user_id:
            logger.error("[joiner] User '%s' created but id lookup returned nothing", username)
            raise UserIdLookupError(username)

        logger.info("[joiner] User '%s' created (id=%s)", username, user_id)
        return user_id
