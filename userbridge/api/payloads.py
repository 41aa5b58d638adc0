"""Request body helpers shared by the JSON blueprints."""
from __future__ import annotations
from typing import Optional

from flask import request

from userbridge.core.errors import ErrorCode, ServiceError


def json_object(required: bool = True) -> dict:
    """Return the JSON body as a dict.

    A missing body yields ``{}`` unless ``required``; a body that is not a
    JSON object is always a ValidationError.
    """
    payload = request.get_json(silent=True)
    if payload is None and not required:
        return {}
    if not isinstance(payload, dict):
        raise ServiceError(ErrorCode.VALIDATION, "JSON object body required", 400)
    return payload


def optional_text(payload: dict, key: str) -> Optional[str]:
    """Return ``payload[key]`` if it is a string or absent; reject other JSON types."""
    value = payload.get(key)
    if value is not None and not isinstance(value, str):
        raise ServiceError(ErrorCode.VALIDATION, f"{key} must be a string", 400)
    return value
