"""
auth/ledger.py -- Persistent ledger of issued refresh tokens.

A refresh token is valid iff its row exists, is unexpired, and the row's
user_id matches the user_id embedded in the token. Rows are never updated in
place: rotation deletes the consumed row and inserts the replacement inside a
single transaction.

Rotation guarantees:
  - never both rows present: the delete and insert commit together
  - never neither: if the insert fails, the transaction rolls back and the
    old row survives, so the client can retry with the same token
  - single use under concurrency: the DELETE is filtered on (id, user_id,
    token) and its rowcount is checked; a second rotation of the same token
    deletes nothing and is rejected with InvalidRefreshToken. Matching on the
    token value keeps this true even where a replacement row reuses the id.

Expiry is lazy. expires_at is compared on the next use and the row is
deleted then; there is no background sweep.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from auth.db import now_iso, now_utc, refresh_tokens, store_errors
from auth.errors import InvalidRefreshToken
from auth.models import RefreshToken

logger = logging.getLogger("marketplace.auth")


class RefreshTokenLedger:
    """Repository for RefreshToken rows.

    ttl must equal the issuer's refresh-token TTL; both are built from
    Settings.refresh_token_expire_days.

    Usage:
        ledger = RefreshTokenLedger(engine, ttl=timedelta(days=7))
        ledger.store(user_id, token)
        row = ledger.lookup(token, user_id)
        ledger.rotate(row.id, user_id, token, new_token)
    """

    def __init__(self, engine: Engine, ttl: timedelta = timedelta(days=7)) -> None:
        self.engine = engine
        self.ttl = ttl

    def _expires_at(self) -> str:
        return (now_utc() + self.ttl).isoformat()

    def store(self, user_id: int, token: str) -> None:
        """Persist a freshly issued refresh token with expires_at = now + ttl."""
        with store_errors(), self.engine.begin() as conn:
            conn.execute(
                refresh_tokens.insert().values(
                    user_id=user_id,
                    token=token,
                    expires_at=self._expires_at(),
                    created_at=now_iso(),
                )
            )

    def lookup(self, token: str, user_id: int) -> RefreshToken | None:
        """Return the row matching both token value and owner, or None."""
        with store_errors(), self.engine.connect() as conn:
            row = conn.execute(
                refresh_tokens.select().where(
                    (refresh_tokens.c.token == token) & (refresh_tokens.c.user_id == user_id)
                )
            ).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def rotate(self, old_row_id: int, user_id: int, old_token: str, new_token: str) -> None:
        """Atomically replace a consumed row with a new token.

        The delete matches on row id, owner and token value together, so a
        caller holding a stale row cannot consume a replacement that reused
        the id. Raises InvalidRefreshToken if the old row is already gone
        (consumed by a concurrent rotation or revoked by logout). Any failure
        on insert rolls the delete back.
        """
        with store_errors(), self.engine.begin() as conn:
            deleted = conn.execute(
                refresh_tokens.delete().where(
                    (refresh_tokens.c.id == old_row_id)
                    & (refresh_tokens.c.user_id == user_id)
                    & (refresh_tokens.c.token == old_token)
                )
            )
            if deleted.rowcount != 1:
                raise InvalidRefreshToken()
            conn.execute(
                refresh_tokens.insert().values(
                    user_id=user_id,
                    token=new_token,
                    expires_at=self._expires_at(),
                    created_at=now_iso(),
                )
            )

    def revoke(self, token: str) -> None:
        """Delete by token value. Absence is not an error."""
        with store_errors(), self.engine.begin() as conn:
            result = conn.execute(refresh_tokens.delete().where(refresh_tokens.c.token == token))
        if result.rowcount:
            logger.debug("Revoked %d refresh token row(s)", result.rowcount)

    def delete_expired(self, row_id: int) -> None:
        """Housekeeping delete for a row found expired on use."""
        with store_errors(), self.engine.begin() as conn:
            conn.execute(refresh_tokens.delete().where(refresh_tokens.c.id == row_id))

    def count_for_user(self, user_id: int) -> int:
        """Number of live (not yet consumed) rows for a user, expired or not."""
        with store_errors(), self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(refresh_tokens).where(refresh_tokens.c.user_id == user_id)
            ).scalar()
        return result or 0


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )
