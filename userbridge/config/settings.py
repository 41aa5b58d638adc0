"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import logging
import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

SECRETS_DIR = Path("/run/secrets")


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = SECRETS_DIR / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                logger.info("[settings] Loaded %s from %s", secret_name, SECRETS_DIR)
                return secret_value
        except OSError as e:
            logger.warning("[settings] Failed to read %s/%s: %s", SECRETS_DIR, secret_name, e)

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            return secret_value

    return None


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # Flask
    secret_key: str
    trusted_proxy_ips: str = "127.0.0.1/32,::1/128"

    # Keycloak
    keycloak_url: str = ""
    keycloak_realm: str = "demo"
    keycloak_admin_realm: str = "master"
    keycloak_issuer: str = ""
    keycloak_request_timeout: float = 5.0
    keycloak_transient_retries: int = 0

    # Realm client used for the end-user password grant
    keycloak_client_id: str = "userbridge"
    keycloak_client_secret: str = ""

    # Client whose roles are assignable and reported next to realm roles
    keycloak_role_client_id: str = "account"

    # Admin credentials
    keycloak_admin: str = "admin"
    keycloak_admin_password: str = "admin"

    # Local store
    database_url: str = "sqlite:///userbridge.db"

    # Audit
    audit_log_signing_key: str = ""

    @property
    def jwks_uri(self) -> str:
        return f"{self.keycloak_url}/realms/{self.keycloak_realm}/protocol/openid-connect/certs"


def _get_or_generate(var_name: str, demo_default: Optional[str] = None, required: bool = True, demo_mode: bool = False) -> str:
    """Get environment variable or use demo default."""
    value = os.environ.get(var_name)
    if value:
        return value

    if demo_mode and demo_default is not None:
        logger.info("[demo-mode] Using default for %s", var_name)
        return demo_default

    if not required:
        return ""

    raise RuntimeError(f"Environment variable {var_name} is required in production mode.")


def _as_number(var_name: str, default, cast):
    raw = os.environ.get(var_name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {var_name} must be a number, got {raw!r}") from exc


def load_settings() -> AppConfig:
    """Load application settings from environment and /run/secrets."""
    demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"
    is_testing = os.environ.get("PYTEST_CURRENT_TEST") is not None

    # Flask secret key
    secret_key = _load_secret_from_file("flask_secret_key", "FLASK_SECRET_KEY")
    if not secret_key:
        if demo_mode or is_testing:
            secret_key = secrets.token_urlsafe(48)
            logger.info("[demo-mode] Generated temporary FLASK_SECRET_KEY")
        else:
            raise RuntimeError("FLASK_SECRET_KEY not found in /run/secrets or environment")

    keycloak_admin_password = _load_secret_from_file("keycloak_admin_password", "KEYCLOAK_ADMIN_PASSWORD")
    keycloak_client_secret = _load_secret_from_file("keycloak_client_secret", "KEYCLOAK_CLIENT_SECRET") or ""

    audit_log_signing_key = _load_secret_from_file("audit_log_signing_key", "AUDIT_LOG_SIGNING_KEY")
    if audit_log_signing_key:
        os.environ["AUDIT_LOG_SIGNING_KEY"] = audit_log_signing_key
    else:
        audit_log_signing_key = ""

    # Trusted proxies
    trusted_proxy_ips = os.environ.get("TRUSTED_PROXY_IPS")
    if not trusted_proxy_ips:
        if demo_mode or is_testing:
            trusted_proxy_ips = "127.0.0.1/32,::1/128"
        else:
            raise RuntimeError("TRUSTED_PROXY_IPS is required when DEMO_MODE is false.")

    # Keycloak
    keycloak_url = _get_or_generate(
        "KEYCLOAK_URL",
        demo_default="http://127.0.0.1:8080",
        demo_mode=demo_mode or is_testing,
    ).rstrip("/")
    keycloak_realm = os.environ.get("KEYCLOAK_REALM", "demo")
    keycloak_admin_realm = os.environ.get("KEYCLOAK_ADMIN_REALM", "master")
    keycloak_issuer = os.environ.get("KEYCLOAK_ISSUER") or f"{keycloak_url}/realms/{keycloak_realm}"

    keycloak_client_id = os.environ.get("KEYCLOAK_CLIENT_ID", "userbridge")
    keycloak_role_client_id = os.environ.get("KEYCLOAK_ROLE_CLIENT_ID", "account")

    keycloak_admin = _get_or_generate(
        "KEYCLOAK_ADMIN",
        demo_default="admin",
        demo_mode=demo_mode or is_testing,
    )
    if not keycloak_admin_password:
        keycloak_admin_password = _get_or_generate(
            "KEYCLOAK_ADMIN_PASSWORD",
            demo_default="admin",
            demo_mode=demo_mode or is_testing,
        )

    config = AppConfig(
        demo_mode=demo_mode,
        secret_key=secret_key,
        trusted_proxy_ips=trusted_proxy_ips,
        keycloak_url=keycloak_url,
        keycloak_realm=keycloak_realm,
        keycloak_admin_realm=keycloak_admin_realm,
        keycloak_issuer=keycloak_issuer,
        keycloak_request_timeout=_as_number("KEYCLOAK_REQUEST_TIMEOUT", 5.0, float),
        keycloak_transient_retries=max(0, _as_number("KEYCLOAK_TRANSIENT_RETRIES", 0, int)),
        keycloak_client_id=keycloak_client_id,
        keycloak_client_secret=keycloak_client_secret,
        keycloak_role_client_id=keycloak_role_client_id,
        keycloak_admin=keycloak_admin,
        keycloak_admin_password=keycloak_admin_password,
        database_url=os.environ.get("DATABASE_URL", "sqlite:///userbridge.db"),
        audit_log_signing_key=audit_log_signing_key,
    )

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    logger.info("[settings] Mode=%s; realm=%s; client_id=%s", mode_label, keycloak_realm, keycloak_client_id)
    if demo_mode:
        logger.warning("[settings] Demo credentials in use. Do not deploy with these defaults.")

    return config
