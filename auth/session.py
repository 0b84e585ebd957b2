"""
auth/session.py -- The session state machine.

Per principal:

    Unauthenticated -> Registered(pending | active) -> Authenticated
                    -> Refreshed* -> LoggedOut

SessionService orchestrates every transition over its four injected
collaborators (credential store, password hasher, token issuer, refresh
ledger). It holds no per-request state, so one instance serves all requests.

Failure reporting:
  Every failure is a ServiceError subclass from auth/errors.py. Store and
  token errors are translated here so callers only ever see the taxonomy.

  InvalidCredentials is raised for both an unknown email and a wrong
  password, and an unknown email still pays for one bcrypt verification, so
  neither the error nor the response time reveals whether an account exists.

  Login checks is_active BEFORE the password. An inactive account therefore
  answers AccountInactive to anyone who knows its email, without proof of the
  password. This ordering is kept deliberately; see DESIGN.md.

Layer rule: no imports from api/. Import from core/ is allowed for
build_session_service() only.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.db import now_utc, parse_iso
from auth.errors import (
    AccountInactive,
    DuplicateEmail,
    InvalidCredentials,
    InvalidRefreshToken,
    NotFound,
    PendingApproval,
    RefreshTokenExpired,
    RegistrationFailed,
    Rejected,
    ServiceError,
    StoreUnavailable,
    Suspended,
)
from auth.ledger import RefreshTokenLedger
from auth.models import (
    AuthResult,
    ClientProfile,
    ClientRegistration,
    Role,
    TokenPair,
    User,
    VendorProfile,
    VendorRegistration,
    VendorStatus,
)
from auth.passwords import PasswordHasher
from auth.store import CredentialStore, normalize_email
from auth.tokens import TokenError, TokenIssuer, TokenPurpose

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("marketplace.auth")


class SessionService:
    """Registration, login, refresh, logout and profile reads."""

    def __init__(
        self,
        store: CredentialStore,
        ledger: RefreshTokenLedger,
        issuer: TokenIssuer,
        hasher: PasswordHasher,
    ) -> None:
        if ledger.ttl != issuer.refresh_ttl:
            raise ValueError("Refresh ledger TTL must match the issuer's refresh-token TTL.")
        self.store = store
        self.ledger = ledger
        self.issuer = issuer
        self.hasher = hasher

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_vendor(self, request: VendorRegistration) -> dict[str, str]:
        """Create a pending vendor. No tokens: vendors wait for approval."""
        email = normalize_email(request.email)
        user = User(email=email, password_hash="", role=Role.vendor, email_verified=False)
        profile = VendorProfile(
            user_id=None,
            company_name=request.company_name,
            phone=request.phone,
            address=request.address,
            npwp=request.npwp,
            status=VendorStatus.pending,
        )
        self._register(email, request.password, user, lambda: self.store.register_vendor(user, profile))
        logger.info("Vendor registered (pending approval): %s", email)
        return {"email": email, "status": VendorStatus.pending.value}

    def register_client(self, request: ClientRegistration) -> AuthResult:
        """Create an active client and issue its first token pair."""
        email = normalize_email(request.email)
        user = User(email=email, password_hash="", role=Role.client, email_verified=False)
        profile = ClientProfile(
            user_id=None,
            contact_person=request.contact_person,
            phone=request.phone,
            company_name=request.company_name,
            address=request.address,
        )
        created = self._register(email, request.password, user, lambda: self.store.register_client(user, profile))
        logger.info("Client registered: %s (user_id=%s)", email, created.id)
        return AuthResult(user=created, tokens=self._issue(created))

    def _register(self, email: str, password: str, user: User, write) -> User:
        """Shared pre-check, hashing and error mapping for both sign-up flows.

        The pre-check is a fast path only. A concurrent sign-up that commits
        between it and our insert is caught by the UNIQUE constraint and
        surfaces as DuplicateEmail from the store.
        """
        try:
            if self.store.find_by_email(email) is not None:
                raise DuplicateEmail()
            user.password_hash = self.hasher.hash(password)
            return write()
        except DuplicateEmail:
            logger.info("Registration rejected, email already registered: %s", email)
            raise
        except (ServiceError, SQLAlchemyError) as exc:
            logger.exception("Registration failed for %s", email)
            raise RegistrationFailed() from exc

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> AuthResult:
        user = self.store.find_by_email(email)
        if user is None:
            self.hasher.verify_dummy(password)
            raise InvalidCredentials()
        if not user.is_active:
            raise AccountInactive()
        if not self.hasher.verify(password, user.password_hash):
            raise InvalidCredentials()

        match user.role:
            case Role.vendor:
                self._check_vendor_approval(user)
            case Role.client | Role.admin:
                pass

        logger.info("Login succeeded: user_id=%s role=%s", user.id, user.role.value)
        return AuthResult(user=user, tokens=self._issue(user))

    def _check_vendor_approval(self, user: User) -> None:
        status = self.store.get_vendor_status(user.id)
        match status:
            case VendorStatus.approved:
                return
            case VendorStatus.rejected:
                raise Rejected()
            case VendorStatus.suspended:
                raise Suspended()
            case VendorStatus.pending:
                raise PendingApproval()
            case None:
                # A vendor principal without a profile row cannot have been approved.
                logger.error("Vendor user_id=%s has no vendor profile", user.id)
                raise PendingApproval()

    # ------------------------------------------------------------------
    # Refresh / logout
    # ------------------------------------------------------------------

    def refresh(self, token: str) -> TokenPair:
        """Exchange a refresh token for a new pair; the old token is consumed.

        An unknown token and an expired one are distinguished only after a
        matching row is found: a token with no row is always
        InvalidRefreshToken, even if its exp has passed.
        """
        if not token:
            raise InvalidRefreshToken()
        try:
            claims = self.issuer.verify(token, TokenPurpose.refresh)
        except TokenError as exc:
            logger.info("Refresh rejected: %s", exc)
            raise InvalidRefreshToken() from exc
        user_id = claims["user_id"]

        row = self.ledger.lookup(token, user_id)
        if row is None:
            raise InvalidRefreshToken()
        if now_utc() > parse_iso(row.expires_at):
            self.ledger.delete_expired(row.id)
            logger.info("Refresh token expired for user_id=%s; row removed", user_id)
            raise RefreshTokenExpired()

        user = self.store.get_by_id(user_id)
        if user is None:
            logger.error("Refresh token row references missing user_id=%s", user_id)
            raise InvalidRefreshToken()

        tokens = self.issuer.issue_pair(user)
        self.ledger.rotate(row.id, user_id, token, tokens.refresh_token)
        return tokens

    def logout(self, token: str | None) -> dict[str, bool]:
        """Revoke the refresh token if it exists. Always reports success."""
        if token:
            try:
                self.ledger.revoke(token)
            except (StoreUnavailable, SQLAlchemyError):
                logger.exception("Logout revoke failed; reporting success")
        return {"success": True}

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_profile(self, user_id: int, role: Role) -> dict[str, Any]:
        """Return the user's base fields merged with its role-specific profile."""
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFound()
        profile: dict[str, Any] = {"id": user.id, "email": user.email, "role": user.role.value}

        match Role(role):
            case Role.vendor:
                vendor = self.store.get_vendor_profile(user_id)
                if vendor is None:
                    logger.error("Vendor user_id=%s has no vendor profile", user_id)
                    raise NotFound()
                profile.update(
                    company_name=vendor.company_name,
                    phone=vendor.phone,
                    address=vendor.address,
                    npwp=vendor.npwp,
                    status=vendor.status.value,
                    registration_type=vendor.registration_type,
                )
            case Role.client:
                client = self.store.get_client_profile(user_id)
                if client is None:
                    logger.error("Client user_id=%s has no client profile", user_id)
                    raise NotFound()
                profile.update(
                    company_name=client.company_name,
                    contact_person=client.contact_person,
                    phone=client.phone,
                    address=client.address,
                )
            case Role.admin:
                pass
        return profile

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue(self, user: User) -> TokenPair:
        tokens = self.issuer.issue_pair(user)
        self.ledger.store(user.id, tokens.refresh_token)
        return tokens


def build_session_service(settings: Settings, engine: Engine) -> SessionService:
    """Wire a SessionService from settings around an existing engine."""
    issuer = TokenIssuer.from_settings(settings)
    return SessionService(
        store=CredentialStore(engine),
        ledger=RefreshTokenLedger(engine, ttl=timedelta(days=settings.refresh_token_expire_days)),
        issuer=issuer,
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
    )
