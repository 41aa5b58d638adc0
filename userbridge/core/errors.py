"""Error taxonomy and the single provider-error classifier.

Every failure leaving a workflow is a ``ServiceError`` carrying a stable
code, a human message and the username it concerns. Provider exceptions are
mapped onto the taxonomy by ``classify_provider_error``: HTTP status first,
message inspection only when no status is available.
"""
from __future__ import annotations
from typing import Optional

from userbridge.core.keycloak.exceptions import (
    KeycloakAPIError,
    KeycloakUnavailableError,
    RoleAlreadyExistsError,
    UserAlreadyExistsError,
    UserIdLookupError,
)


class ErrorCode:
    VALIDATION = "ValidationError"
    PROVIDER_UNAVAILABLE = "ProviderUnavailable"
    PROVIDER_CONFLICT = "ProviderConflict"
    PROVIDER_REJECTED = "ProviderRejected"
    NOT_PROVISIONED = "NotProvisioned"
    DISABLED = "Disabled"
    PARTIAL_SYNC_WARNING = "PartialSyncWarning"
    INTERNAL = "Internal"
    NOT_FOUND = "NotFound"
    LOCAL_CONFLICT = "LocalConflict"


DEFAULT_STATUS = {
    ErrorCode.VALIDATION: 400,
    ErrorCode.PROVIDER_UNAVAILABLE: 503,
    ErrorCode.PROVIDER_CONFLICT: 409,
    ErrorCode.PROVIDER_REJECTED: 400,
    ErrorCode.NOT_PROVISIONED: 404,
    ErrorCode.DISABLED: 403,
    ErrorCode.PARTIAL_SYNC_WARNING: 200,
    ErrorCode.INTERNAL: 500,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.LOCAL_CONFLICT: 409,
}

SYNC_WARNING_MARKER = "(warning: local DB sync failed)"


class ServiceError(Exception):
    """Structured failure returned to HTTP and CLI callers."""

    def __init__(
        self,
        code: str,
        message: str,
        status: Optional[int] = None,
        username: Optional[str] = None,
        **context,
    ):
        self.code = code
        self.message = message
        self.status = status or DEFAULT_STATUS.get(code, 500)
        self.username = username
        self.context = context
        super().__init__(message)

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message, "username": self.username}
        payload.update(self.context)
        return payload


def status_for_message(message: Optional[str]) -> tuple[str, int]:
    """Last-resort classification by message content."""
    text = (message or "").lower()
    if "already exists" in text:
        return ErrorCode.PROVIDER_CONFLICT, 409
    if "not found" in text:
        return ErrorCode.NOT_FOUND, 404
    if "invalid" in text:
        return ErrorCode.VALIDATION, 400
    return ErrorCode.INTERNAL, 500


def classify_provider_error(
    exc: Exception,
    username: Optional[str] = None,
    rejected_status: int = 400,
) -> ServiceError:
    """Map a provider-side exception onto the error taxonomy.

    Args:
        exc: Exception raised while talking to Keycloak
        username: User the failed operation concerned
        rejected_status: HTTP status for a plain 4xx rejection (401 on login)
    """
    if isinstance(exc, ServiceError):
        return exc

    if isinstance(exc, (UserAlreadyExistsError, RoleAlreadyExistsError)):
        return ServiceError(ErrorCode.PROVIDER_CONFLICT, str(exc), 409, username)

    if isinstance(exc, KeycloakUnavailableError):
        return ServiceError(ErrorCode.PROVIDER_UNAVAILABLE, "Identity provider unavailable", 503, username)

    if isinstance(exc, UserIdLookupError):
        return ServiceError(ErrorCode.INTERNAL, str(exc), 500, username)

    if isinstance(exc, KeycloakAPIError) and exc.status_code:
        status = exc.status_code
        if status == 409:
            return ServiceError(ErrorCode.PROVIDER_CONFLICT, exc.message or "Conflict", 409, username)
        if status >= 500:
            return ServiceError(ErrorCode.PROVIDER_UNAVAILABLE, "Identity provider error", 503, username)
        if 400 <= status < 500:
            if "exists" in (exc.message or "").lower():
                return ServiceError(ErrorCode.PROVIDER_CONFLICT, exc.message, 409, username)
            return ServiceError(ErrorCode.PROVIDER_REJECTED, exc.message or "Rejected by identity provider",
                                rejected_status, username)

    code, status = status_for_message(str(exc))
    return ServiceError(code, str(exc) or exc.__class__.__name__, status, username)
