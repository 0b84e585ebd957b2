"""
auth/tokens.py -- Access and refresh token issuance and verification.

Security design decisions:
  JWT: python-jose with HS256. Two signing contexts share one code path:

    access  -- short TTL, claims {user_id, email, role}, ACCESS_TOKEN_SECRET
    refresh -- long TTL,  claims {user_id},              REFRESH_TOKEN_SECRET

  The verifier is parameterized by TokenPurpose, which selects both the
  secret and the expected "typ" claim. Key separation means an access token
  presented at the refresh endpoint fails signature verification; the typ
  check is a second, independent guard.

  Every token carries a random jti. Two refresh tokens minted in the same
  second for the same user would otherwise be byte-identical and collide on
  the ledger's UNIQUE(token) column.

  verify() raises TokenExpired or TokenInvalid. These never leave the auth
  package -- the session core maps them to InvalidRefreshToken, and the
  api/ dependency maps them to 401.

Layer rule: no imports from api/. Import from core/ is allowed for
TokenIssuer.from_settings() only.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import Principal, Role, TokenPair, User

if TYPE_CHECKING:
    from core.config import Settings

_ALGORITHM = "HS256"


class TokenPurpose(str, Enum):
    access = "access"
    refresh = "refresh"


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenExpired(TokenError):
    pass


class TokenInvalid(TokenError):
    """Bad signature, malformed token, wrong purpose, or missing claims."""


class TokenIssuer:
    """Mints and verifies signed tokens for both purposes.

    Usage:
        issuer = TokenIssuer.from_settings(get_settings())
        pair = issuer.issue_pair(user)
        claims = issuer.verify(pair.refresh_token, TokenPurpose.refresh)
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        algorithm: str = _ALGORITHM,
    ) -> None:
        if access_secret == refresh_secret:
            raise ValueError("Access and refresh tokens must be signed with different secrets.")
        self._secrets = {
            TokenPurpose.access: access_secret,
            TokenPurpose.refresh: refresh_secret,
        }
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenIssuer:
        return cls(
            access_secret=settings.access_token_secret,
            refresh_secret=settings.refresh_token_secret,
            access_ttl=timedelta(seconds=settings.access_token_expire_seconds),
            refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
        )

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def issue_access_token(self, user_id: int, email: str, role: Role | str) -> str:
        return self._encode(
            TokenPurpose.access,
            {"user_id": user_id, "email": email, "role": Role(role).value},
            self.access_ttl,
        )

    def issue_refresh_token(self, user_id: int) -> str:
        return self._encode(TokenPurpose.refresh, {"user_id": user_id}, self.refresh_ttl)

    def issue_pair(self, user: User) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(user.id, user.email, user.role),
            refresh_token=self.issue_refresh_token(user.id),
        )

    def _encode(self, purpose: TokenPurpose, claims: dict[str, Any], ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            **claims,
            "typ": purpose.value,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(payload, self._secrets[purpose], algorithm=self.algorithm)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(self, token: str, purpose: TokenPurpose) -> dict[str, Any]:
        """Verify signature, expiry and purpose; return the claims.

        Raises TokenExpired when the signature is good but exp has passed,
        TokenInvalid on every other failure.
        """
        try:
            payload = jwt.decode(token, self._secrets[purpose], algorithms=[self.algorithm])
        except ExpiredSignatureError as exc:
            raise TokenExpired("token expired") from exc
        except JWTError as exc:
            raise TokenInvalid("token verification failed") from exc
        if payload.get("typ") != purpose.value:
            raise TokenInvalid("wrong token purpose")
        if not isinstance(payload.get("user_id"), int):
            raise TokenInvalid("missing user_id claim")
        if purpose is TokenPurpose.access and ("email" not in payload or "role" not in payload):
            raise TokenInvalid("missing identity claims")
        return payload

    def verify_access(self, token: str) -> Principal:
        """Verify an access token and return the identity it carries."""
        payload = self.verify(token, TokenPurpose.access)
        try:
            role = Role(payload["role"])
        except ValueError as exc:
            raise TokenInvalid("unknown role") from exc
        return Principal(user_id=payload["user_id"], email=payload["email"], role=role)
