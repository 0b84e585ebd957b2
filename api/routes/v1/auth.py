"""
api/routes/v1/auth.py -- Registration, login and session REST endpoints.

Routes:
  POST /api/v1/auth/register/vendor  -- vendor self-registration (pending, no tokens)
  POST /api/v1/auth/register/client  -- client registration; returns a token pair
  POST /api/v1/auth/login            -- password login; returns a token pair
  POST /api/v1/auth/refresh-token    -- rotate a refresh token into a new pair
  POST /api/v1/auth/logout           -- revoke a refresh token; always 200
  GET  /api/v1/auth/profile          -- current principal's profile (requires auth)

Handlers are thin: they map transport models to domain requests and call the
SessionService. Typed failures (ServiceError) propagate to the exception
handler in api/main.py, which renders the ErrorResponse envelope.

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  Responses that carry tokens are sent with Cache-Control: no-store.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import limiter
from api.models import (
    AuthResponse,
    ClientRegisterRequest,
    LoginRequest,
    LogoutRequest,
    LogoutResponse,
    ProfileResponse,
    RefreshRequest,
    TokenPairResponse,
    VendorRegisterRequest,
    VendorRegisterResponse,
)
from auth.dependencies import get_current_principal, get_session_service
from auth.models import Principal
from auth.session import SessionService
from core.config import get_settings

# Auth policy:
# - POST /auth/register/vendor: public
# - POST /auth/register/client: public
# - POST /auth/login:           public, rate limited
# - POST /auth/refresh-token:   public -- the refresh token is the credential
# - POST /auth/logout:          public -- revoking needs only the refresh token
# - GET  /auth/profile:         requires a valid access token
router = APIRouter()


def _no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"


@router.post("/auth/register/vendor", response_model=VendorRegisterResponse, status_code=201)
def register_vendor(
    body: VendorRegisterRequest,
    service: SessionService = Depends(get_session_service),
) -> VendorRegisterResponse:
    """Register a vendor. The account stays pending until an admin approves it."""
    result = service.register_vendor(body.to_domain())
    return VendorRegisterResponse(**result)


@router.post("/auth/register/client", response_model=AuthResponse, status_code=201)
def register_client(
    body: ClientRegisterRequest,
    response: Response,
    service: SessionService = Depends(get_session_service),
) -> AuthResponse:
    """Register a client and sign it in immediately."""
    result = service.register_client(body.to_domain())
    _no_store(response)
    return AuthResponse.from_result(result)


@limiter.limit(get_settings().login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=AuthResponse)
def login(
    request: Request,
    body: LoginRequest,
    response: Response,
    service: SessionService = Depends(get_session_service),
) -> AuthResponse:
    """Authenticate with email and password.

    Unknown email and wrong password produce the same 401 invalid_credentials
    response. Vendors additionally need an approved profile.
    """
    result = service.login(str(body.email), body.password)
    _no_store(response)
    return AuthResponse.from_result(result)


@router.post("/auth/refresh-token", response_model=TokenPairResponse)
def refresh_token(
    body: RefreshRequest,
    response: Response,
    service: SessionService = Depends(get_session_service),
) -> TokenPairResponse:
    """Consume a refresh token and return a new pair. The old token stops working."""
    pair = service.refresh(body.refresh_token)
    _no_store(response)
    return TokenPairResponse.from_pair(pair)


async def _logout_body(request: Request) -> LogoutRequest:
    """Parse the logout body without ever failing: malformed or non-JSON bodies mean no token."""
    try:
        payload = await request.json()
    except ValueError:
        return LogoutRequest()
    if not isinstance(payload, dict):
        return LogoutRequest()
    return LogoutRequest.model_validate(payload)


@router.post(
    "/auth/logout",
    response_model=LogoutResponse,
    openapi_extra={"requestBody": {"content": {"application/json": {"schema": LogoutRequest.model_json_schema()}}}},
)
def logout(
    body: LogoutRequest = Depends(_logout_body),
    service: SessionService = Depends(get_session_service),
) -> LogoutResponse:
    """Revoke the refresh token. Reports success whether or not it existed."""
    return LogoutResponse(**service.logout(body.token()))


@router.get("/auth/profile", response_model=ProfileResponse)
def profile(
    principal: Principal = Depends(get_current_principal),
    service: SessionService = Depends(get_session_service),
) -> ProfileResponse:
    """Return the authenticated principal's account and profile fields."""
    return ProfileResponse(**service.get_profile(principal.user_id, principal.role))
