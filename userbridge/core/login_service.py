"""DB-first login: local existence and enablement are checked before Keycloak is contacted."""
from __future__ import annotations
import logging
from typing import Callable, Optional

from userbridge.config.settings import AppConfig
from userbridge.core import audit
from userbridge.core.errors import ErrorCode, ServiceError, classify_provider_error
from userbridge.core.keycloak import KeycloakClient
from userbridge.store import LocalUserService

logger = logging.getLogger(__name__)

SIGNUP_ENDPOINT = "/users/create"
LOGIN_TYPE = "DB_FIRST_SUCCESS"


class LoginService:
    """Authenticate a locally registered user against the realm's token endpoint."""

    def __init__(
        self,
        cfg: AppConfig,
        store: LocalUserService,
        client_factory: Optional[Callable[[], KeycloakClient]] = None,
    ):
        self.cfg = cfg
        self.store = store
        self.client_factory = client_factory or (
            lambda: KeycloakClient(
                cfg.keycloak_url,
                timeout=cfg.keycloak_request_timeout,
                retries=cfg.keycloak_transient_retries,
            )
        )

    def login(self, username: str, password: str) -> dict:
        """Run the login workflow.

        Returns:
            ``{"token_info", "user_info", "login_type"}`` on success

        Raises:
            ServiceError: ValidationError (400), NotProvisioned (404),
                Disabled (403), ProviderRejected (401), ProviderUnavailable (503)
        """
        if not isinstance(username, (str, type(None))) or not isinstance(password, (str, type(None))):
            raise ServiceError(ErrorCode.VALIDATION, "username and password must be strings", 400)
        username = (username or "").strip()
        if not username or not password:
            raise ServiceError(ErrorCode.VALIDATION, "username and password are required", 400, username or None)

        user = self.store.find_by_username(username)
        if user is None:
            logger.info("[login] Unknown user '%s', signup required", username)
            self._audit(username, False, ErrorCode.NOT_PROVISIONED)
            raise ServiceError(
                ErrorCode.NOT_PROVISIONED,
                "User is not registered. Please sign up first.",
                404,
                username,
                action_required="SIGNUP",
                signup_endpoint=SIGNUP_ENDPOINT,
            )

        if not user.enabled:
            logger.info("[login] Disabled user '%s' refused", username)
            self._audit(username, False, ErrorCode.DISABLED)
            raise ServiceError(ErrorCode.DISABLED, "User account is disabled", 403, username)

        try:
            token_info = self.client_factory().password_grant(
                self.cfg.keycloak_realm,
                self.cfg.keycloak_client_id,
                self.cfg.keycloak_client_secret,
                username,
                password,
            )
        except Exception as exc:
            error = classify_provider_error(exc, username=username, rejected_status=401)
            if error.code == ErrorCode.PROVIDER_REJECTED:
                error.message = "Invalid username or password"
            logger.warning("[login] Authentication of '%s' failed: %s", username, error.code)
            self._audit(username, False, error.code)
            raise error from exc

        self._audit(username, True)
        return {
            "token_info": token_info,
            "user_info": {
                "user_seq": user.id,
                "username": user.username,
                "email": user.email,
                "role": user.role,
                "keycloak_user_id": user.keycloak_user_id,
                "last_login": user.updated_at.isoformat() if user.updated_at else None,
            },
            "login_type": LOGIN_TYPE,
        }

    def user_check(self, username: str) -> dict:
        """Report whether a username is registered locally."""
        user = self.store.find_by_username((username or "").strip())
        return {
            "username": username,
            "exists": user is not None,
            "enabled": bool(user and user.enabled),
            "keycloak_linked": bool(user and user.keycloak_user_id),
        }

    def _audit(self, username: str, success: bool, error_code: Optional[str] = None) -> None:
        audit.safe_log_event(
            "login",
            username,
            operator=username,
            realm=self.cfg.keycloak_realm,
            details={"error_code": error_code} if error_code else {},
            success=success,
        )
