"""
Shared-secret authentication for the ranking API.

Clients send one of the keys listed in API_KEYS in the X-API-KEY header.
With API_KEYS unset every request is accepted, which is how local
development and the embedded single-process mode run.
"""

import secrets

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from src.config.settings import get_settings

api_key_header = APIKeyHeader(name="X-API-KEY", auto_error=False)

DEV_MODE_KEY = "dev-mode"


def _configured_keys() -> list[str]:
    raw = get_settings().api_keys or ""
    return [key.strip() for key in raw.split(",") if key.strip()]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "APIKey"},
    )


async def verify_api_key(api_key: str | None = Security(api_key_header)) -> str:
    """Return the caller's key, or raise 401 if it is missing or unknown."""
    if not get_settings().api_keys:
        return DEV_MODE_KEY

    if not api_key:
        raise _unauthorized("Missing API key. Provide X-API-KEY header.")

    # constant time, no early exit
    matched = False
    for key in _configured_keys():
        if secrets.compare_digest(key.encode(), api_key.encode()):
            matched = True
    if not matched:
        raise _unauthorized("Invalid API key")

    return api_key
