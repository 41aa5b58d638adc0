"""Signed audit trail for provisioning, login and role events."""

from __future__ import annotations
import datetime
import hashlib
import hmac
import json
import logging
import os
from pathlib import Path
from typing import Any, Literal

AUDIT_LOG_DIR = Path(os.environ.get("AUDIT_LOG_DIR", ".runtime/audit"))
AUDIT_LOG_FILE = AUDIT_LOG_DIR / "userbridge-events.jsonl"
DEMO_SIGNING_KEY = "demo-audit-signing-key-change-in-production"

logger = logging.getLogger(__name__)

EventType = Literal[
    "provision_user", "provision_system_account",
    "login",
    "role_create", "role_defaults", "role_assign",
    "local_user_create", "local_user_update", "local_user_delete",
]


def _get_signing_key() -> bytes:
    """Signing key from AUDIT_LOG_SIGNING_KEY_FILE, AUDIT_LOG_SIGNING_KEY, or the demo default."""
    key_file = os.environ.get("AUDIT_LOG_SIGNING_KEY_FILE")
    if key_file:
        path = Path(key_file)
        if path.is_file():
            try:
                return path.read_text(encoding="utf-8").strip().encode("utf-8")
            except OSError as exc:
                logger.warning("[audit] Cannot read signing key file %s: %s", path, exc)
    if "AUDIT_LOG_SIGNING_KEY" in os.environ:
        return os.environ["AUDIT_LOG_SIGNING_KEY"].strip().encode("utf-8")
    return os.environ.get("AUDIT_LOG_SIGNING_KEY_DEMO", DEMO_SIGNING_KEY).encode("utf-8")


def _ensure_audit_dir() -> None:
    """Create audit directory with restricted permissions."""
    AUDIT_LOG_DIR.mkdir(parents=True, exist_ok=True)
    AUDIT_LOG_DIR.chmod(0o700)


def _sign_event(event: dict[str, Any]) -> str:
    """Generate HMAC-SHA256 signature for audit event."""
    signing_key = _get_signing_key()
    if not signing_key:
        return ""
    canonical = json.dumps(event, sort_keys=True, separators=(",", ":"))
    return hmac.new(signing_key, canonical.encode("utf-8"), hashlib.sha256).hexdigest()


def log_event(
    event_type: EventType,
    username: str,
    *,
    operator: str = "system",
    realm: str = "",
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """Append one signed event to the audit trail.

    Args:
        event_type: Kind of operation (provision_user, login, role_assign, ...)
        username: Target username affected by the operation
        operator: Who performed the operation ("api", "cli", a username)
        realm: Keycloak realm where the operation occurred
        details: Additional context (roles, groups, error code, ...)
        success: Whether the operation succeeded
    """
    _ensure_audit_dir()

    event = {
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "event_type": event_type,
        "realm": realm,
        "username": username,
        "operator": operator,
        "success": success,
        "details": details or {},
    }

    signature = _sign_event(event)
    if signature:
        event["signature"] = signature

    with AUDIT_LOG_FILE.open("a", encoding="utf-8") as f:
        f.write(json.dumps(event, ensure_ascii=False) + "\n")

    AUDIT_LOG_FILE.chmod(0o600)


def safe_log_event(
    event_type: EventType,
    username: str,
    *,
    operator: str = "system",
    realm: str = "",
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> bool:
    """Log an event without ever raising.

    Audit failures must not break the workflow that triggered them; they are
    reported through the module logger instead.

    Returns:
        True if event was logged successfully, False if logging failed
    """
    try:
        log_event(
            event_type,
            username,
            operator=operator,
            realm=realm,
            details=details,
            success=success,
        )
        return True
    except Exception as exc:
        logger.warning("[audit] Failed to log %s event for %s: %s", event_type, username, exc)
        return False


def verify_audit_log() -> tuple[int, int]:
    """Verify all signatures in the audit log.

    Returns:
        Tuple of (total_events, valid_signatures)
    """
    if not AUDIT_LOG_FILE.exists():
        return 0, 0

    total = 0
    valid = 0

    with AUDIT_LOG_FILE.open("r", encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            total += 1
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            stored_sig = event.pop("signature", "")
            if stored_sig and hmac.compare_digest(stored_sig, _sign_event(event)):
                valid += 1

    return total, valid
