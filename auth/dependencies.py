"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Access tokens arrive as "Authorization: Bearer <token>" and are verified
against the access-token secret only. A refresh token presented here fails
signature verification (different secret) and is rejected with 401.

get_current_principal() also re-loads the account: a user deactivated (or
deleted) after the token was issued loses access immediately rather than
when the token expires.

Layer rule: no imports from api/ or core/.
  auth/dependencies.py may import from fastapi (for Depends/HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import Principal
from auth.session import SessionService
from auth.tokens import TokenError


def get_session_service(request: Request) -> SessionService:
    """Return the SessionService wired into app.state by the lifespan."""
    return request.app.state.session_service


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"code": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_principal(request: Request) -> Principal:
    """Require a valid access token for an active account. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_current_principal)): ...
    """
    auth_header = request.headers.get("Authorization", "")
    token = auth_header[7:] if auth_header.startswith("Bearer ") else ""
    if not token:
        raise _unauthorized("unauthorized", "Access token required.")
    service = get_session_service(request)
    try:
        principal = service.issuer.verify_access(token)
    except TokenError as exc:
        raise _unauthorized("invalid_token", "Invalid or expired access token.") from exc

    user = service.store.get_by_id(principal.user_id)
    if user is None or not user.is_active:
        raise _unauthorized("unauthorized", "Account is inactive or no longer exists.")
    return principal
