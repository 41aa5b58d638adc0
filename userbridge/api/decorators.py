"""
Flask decorators for bearer-token authentication and role checks.

Access tokens are Keycloak RS256 JWTs, verified against the realm JWKS
endpoint with PyJWT. Roles come from ``realm_access.roles``.
"""

import logging
from functools import wraps
from typing import Optional, Dict

import jwt
from jwt import PyJWKClient
from jwt.exceptions import (
    ExpiredSignatureError,
    InvalidIssuerError,
    InvalidSignatureError,
    DecodeError,
    PyJWKClientError,
)
from flask import request, jsonify, current_app, g

from userbridge.core.rbac import current_username, has_any_role, realm_roles

logger = logging.getLogger(__name__)

# Global JWKS client, rebuilt when the configured JWKS URL changes
_jwks_client: Optional[PyJWKClient] = None


class TokenValidationError(Exception):
    """Exception raised when JWT token validation fails."""
    pass


def get_jwks_client() -> PyJWKClient:
    """
    Get the cached JWKS client for the configured realm.

    Keys are cached and refreshed hourly; the ``kid`` header of the JWT
    selects the key.
    """
    global _jwks_client

    jwks_url = current_app.config["APP_CONFIG"].jwks_uri
    if _jwks_client is None or _jwks_client.uri != jwks_url:
        logger.info("Initializing JWKS client for: %s", jwks_url)
        _jwks_client = PyJWKClient(
            jwks_url,
            cache_keys=True,
            max_cached_keys=16,
            lifespan=3600,
            headers={"User-Agent": "userbridge/1.0"},
        )

    return _jwks_client


def validate_jwt_token(token: str) -> Dict[str, object]:
    """
    Validate a bearer JWT: RS256 signature via JWKS, ``exp`` and ``iss``.

    Returns:
        dict: Validated token claims

    Raises:
        TokenValidationError: If any validation fails
    """
    cfg = current_app.config["APP_CONFIG"]

    try:
        signing_key = get_jwks_client().get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            issuer=cfg.keycloak_issuer,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_iss": True,
                "verify_aud": False,
                "require": ["exp", "iss"],
            },
            leeway=5,
        )
    except ExpiredSignatureError:
        raise TokenValidationError("Token expired")
    except InvalidIssuerError as e:
        raise TokenValidationError(f"Invalid issuer: {e}")
    except InvalidSignatureError:
        raise TokenValidationError("Invalid signature")
    except (DecodeError, PyJWKClientError) as e:
        raise TokenValidationError(f"Token decode error: {e}")
    except jwt.InvalidTokenError as e:
        raise TokenValidationError(f"Token validation failed: {e}")


def bearer_token() -> Optional[str]:
    """Extract the bearer token from the Authorization header, or None."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


def _unauthorized(message: str):
    return jsonify({"error": "Unauthorized", "message": message}), 401


def _authenticate():
    """Validate the request token and stash claims on ``g``; return an error response or None."""
    token = bearer_token()
    if not token:
        logger.warning("Request to %s without bearer token", request.path)
        return _unauthorized("Authorization header required. Use 'Authorization: Bearer <token>'")
    try:
        claims = validate_jwt_token(token)
    except TokenValidationError as e:
        logger.warning("JWT validation failed on %s: %s", request.path, e)
        return _unauthorized(str(e))

    g.token_claims = claims
    g.token_roles = realm_roles(claims)
    g.current_username = current_username(claims)
    return None


def require_token(fn):
    """Require any valid bearer token."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        failure = _authenticate()
        if failure is not None:
            return failure
        return fn(*args, **kwargs)
    return wrapper


def require_role(*roles: str):
    """
    Require a valid bearer token carrying at least one of ``roles``.

    Returns 401 for a missing/invalid token and 403 when the role is missing.

    Example:
        @bp.route("/users", methods=["GET"])
        @require_role("admin")
        def list_users():
            ...
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            failure = _authenticate()
            if failure is not None:
                return failure
            if not has_any_role(g.token_roles, roles):
                logger.warning(
                    "User '%s' lacks role %s for %s (has %s)",
                    g.current_username, roles, request.path, g.token_roles,
                )
                return jsonify({"error": "Forbidden", "message": f"Required role: {', '.join(roles)}"}), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator
