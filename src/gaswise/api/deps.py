"""Request dependencies: service access, caller credentials, error mapping."""

import logging
import secrets
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from gaswise.auth import Credential, Role
from gaswise.errors import (
    AuthorizationError,
    BridgeError,
    GasWiseError,
    PausedSystemError,
    StalenessError,
    StateConflictError,
    TimeoutGateError,
    ValidationError,
)
from gaswise.services import Services
from gaswise.utils.locks import LockTimeoutError

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[GasWiseError], int] = {
    AuthorizationError: 403,
    ValidationError: 422,
    StalenessError: 503,
    StateConflictError: 409,
    TimeoutGateError: 425,
    PausedSystemError: 503,
    BridgeError: 503,
}


def get_services(request: Request) -> Services:
    return request.app.state.services


def _token_matches(given: Optional[str], expected: str) -> bool:
    if not given or not expected:
        return False
    return secrets.compare_digest(given, expected)


async def get_credential(
    services: Services = Depends(get_services),
    x_admin_token: Optional[str] = Header(None),
    x_keeper_token: Optional[str] = Header(None),
    x_bridge_token: Optional[str] = Header(None),
    x_user_address: Optional[str] = Header(None),
) -> Credential:
    """Resolve the caller from request headers.

    Checked in order: admin, keeper, bridge token, then user address.
    If ADMIN_TOKEN is not set outside production, any X-Admin-Token is
    accepted (dev mode).
    """
    settings = services.settings

    if x_admin_token is not None:
        if not settings.admin_token and not settings.is_production:
            return Credential.admin("dev-admin")
        if _token_matches(x_admin_token, settings.admin_token):
            return Credential.admin()
        raise HTTPException(status_code=401, detail="Invalid admin token")

    if x_keeper_token is not None:
        if _token_matches(x_keeper_token, settings.keeper_token):
            return Credential.keeper(settings.keeper_id)
        raise HTTPException(status_code=401, detail="Invalid keeper token")

    if x_bridge_token is not None:
        if _token_matches(x_bridge_token, settings.bridge_token):
            return Credential.bridge(services.orchestrator.bridge.name)
        raise HTTPException(status_code=401, detail="Invalid bridge token")

    if x_user_address:
        return Credential.user(x_user_address)

    raise HTTPException(status_code=401, detail="Missing credentials")


async def get_user_credential(credential: Credential = Depends(get_credential)) -> Credential:
    """Caller acting as a user (X-User-Address)."""
    if credential.role != Role.USER:
        raise AuthorizationError(f"{credential.role.value} may not act as a user")
    return credential


async def handle_gaswise_error(request: Request, exc: GasWiseError) -> JSONResponse:
    status = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)),
        400,
    )
    body = {"success": False, "error": exc.code, "detail": exc.message}
    if exc.entity_id is not None:
        body["entity_id"] = exc.entity_id

    headers = {}
    if isinstance(exc, StateConflictError) and exc.status:
        body["status"] = exc.status
    if isinstance(exc, TimeoutGateError):
        body["retry_after"] = exc.retry_after
        headers["Retry-After"] = str(max(int(exc.retry_after), 1))

    if status >= 500:
        logger.warning(f"{request.method} {request.url.path} -> {status}: {exc.message}")
    return JSONResponse(status_code=status, content=body, headers=headers)


async def handle_lock_timeout(request: Request, exc: LockTimeoutError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} -> 503: {exc}")
    return JSONResponse(
        status_code=503,
        content={"success": False, "error": "lock_timeout", "detail": str(exc)},
        headers={"Retry-After": "1"},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GasWiseError, handle_gaswise_error)
    app.add_exception_handler(LockTimeoutError, handle_lock_timeout)
