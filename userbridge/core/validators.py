"""Input validation helpers for user data."""
from __future__ import annotations
from typing import Optional

ALLOWED_USERNAME_SPECIALS = {".", "-", "_", "@"}


def require(value: Optional[str], field: str) -> str:
    """Return the stripped value, or raise if it is missing, blank or not a string.

    Raises:
        ValueError: If the value is None, blank or not a string
    """
    if value is None:
        raise ValueError(f"{field} is required")
    if not isinstance(value, str):
        raise ValueError(f"{field} must be a string")
    if not value.strip():
        raise ValueError(f"{field} is required")
    return value.strip()


def validate_username(raw: Optional[str]) -> str:
    """Validate a username.

    Args:
        raw: Raw username input

    Returns:
        Trimmed username

    Raises:
        ValueError: If username is invalid
    """
    username = require(raw, "username")
    if len(username) > 64:
        raise ValueError("Username must not exceed 64 characters")
    if any(not (char.isalnum() or char in ALLOWED_USERNAME_SPECIALS) for char in username):
        raise ValueError("Username contains invalid characters")
    return username


def validate_email(email: Optional[str]) -> str:
    """Validate email address.

    Args:
        email: Email address to validate

    Returns:
        Normalized email address

    Raises:
        ValueError: If email is invalid
    """
    email = require(email, "email").lower()
    if "@" not in email:
        raise ValueError("Invalid email format")

    local, domain = email.rsplit("@", 1)
    if not local or not domain or "." not in domain:
        raise ValueError("Invalid email format")
    if len(email) > 254:
        raise ValueError("Email exceeds maximum length")

    return email


def validate_name(name: Optional[str], field: str) -> Optional[str]:
    """Validate an optional first/last name.

    Returns:
        Trimmed name, or None when not given

    Raises:
        ValueError: If name is invalid
    """
    if name is None:
        return None
    if not isinstance(name, str):
        raise ValueError(f"{field} must be a string")
    if not name.strip():
        return None
    name = name.strip()
    if len(name) > 128:
        raise ValueError(f"{field} exceeds maximum length")

    # Prevent injection attacks
    if any(char in name for char in "<>\"'`;&|$"):
        raise ValueError(f"{field} contains invalid characters")

    return name


def validate_local_role(role: Optional[str], allowed: tuple[str, ...]) -> str:
    """Normalize a local role name to upper case and check it is allowed."""
    normalized = require(role, "role").upper()
    if normalized not in allowed:
        raise ValueError(f"Invalid role '{role}': expected one of {', '.join(allowed)}")
    return normalized
