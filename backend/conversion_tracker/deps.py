"""FastAPI dependencies (service lookup, worker callback authentication)."""
from __future__ import annotations

from fastapi import Header, HTTPException, Request
from typing import Annotated
from google.oauth2 import id_token
from google.auth.transport.requests import Request as GoogleAuthRequest

from .config import Settings
from .services.orchestration.job_service import JobLifecycleService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_job_service(request: Request) -> JobLifecycleService:
    """Return the lifecycle service constructed for this application instance."""
    return request.app.state.job_service


async def verify_worker_token(
    request: Request,
    authorization: Annotated[str | None, Header(alias="Authorization")] = None,
) -> dict:
    """Verify the Google-issued OIDC token on conversion worker callbacks.

    Behavior:
    - When TASKS_EMULATE is true (local/dev), bypass verification.
    - Otherwise, require an Authorization: Bearer <token> header.
    - Verify signature, expiry, and audience against CALLBACK_AUDIENCE.
    - Enforce the caller's email equals CALLBACK_SERVICE_ACCOUNT_EMAIL.
    """
    settings = get_app_settings(request)

    # Bypass in emulation mode to simplify local development
    if settings.TASKS_EMULATE:
        return {"email": "emulated-worker@example.com"}

    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    try:
        token_type, token = authorization.split(" ", 1)
        if token_type.lower() != "bearer" or not token:
            raise ValueError("Invalid token type")
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid Authorization header format")

    try:
        decoded = id_token.verify_oauth2_token(
            token,
            GoogleAuthRequest(),
            settings.CALLBACK_AUDIENCE,
        )
    except Exception:  # noqa: BLE001
        raise HTTPException(status_code=401, detail="Invalid OIDC token")

    caller = decoded.get("email")
    if not caller or caller != settings.CALLBACK_SERVICE_ACCOUNT_EMAIL:
        raise HTTPException(status_code=403, detail="Token is from an unauthorized service account")
    return decoded
