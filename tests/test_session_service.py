"""
tests/test_session_service.py -- SessionService end to end over a real SQLite file.

Covers:
  - vendor sign-up is pending and issues no tokens; client sign-up issues a pair
  - duplicate email, including the race where the pre-check misses
  - profile failure during sign-up rolls the user back (RegistrationFailed)
  - unknown email and wrong password are indistinguishable
  - inactive accounts and every vendor approval state at login
  - refresh rotation: single use, expiry, wrong token kind
  - logout is idempotent and always succeeds, even with the store down
  - store outages surface as StoreUnavailable or RegistrationFailed
  - profile reads per role
"""

from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from auth.db import refresh_tokens
from auth.errors import (
    AccountInactive,
    DuplicateEmail,
    IntegrityViolation,
    InvalidCredentials,
    InvalidRefreshToken,
    NotFound,
    PendingApproval,
    RefreshTokenExpired,
    RegistrationFailed,
    Rejected,
    StoreUnavailable,
    Suspended,
)
from auth.ledger import RefreshTokenLedger
from auth.models import Role, User, VendorStatus
from auth.session import SessionService
from auth.tokens import TokenPurpose


def _user_id(service: SessionService, email: str) -> int:
    return service.store.find_by_email(email).id


def _approved_vendor(service: SessionService, make_vendor, email: str = "vendor@x.com") -> int:
    service.register_vendor(make_vendor(email))
    uid = _user_id(service, email)
    service.store.set_vendor_status(uid, VendorStatus.approved)
    return uid


def _expire_all_refresh_tokens(service: SessionService) -> None:
    with service.ledger.engine.begin() as conn:
        conn.execute(refresh_tokens.update().values(expires_at="2000-01-01T00:00:00+00:00"))


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegistration:
    def test_vendor_registration_is_pending_without_tokens(self, service, make_vendor):
        result = service.register_vendor(make_vendor("NewVendor@X.com"))
        assert result == {"email": "newvendor@x.com", "status": "pending"}
        uid = _user_id(service, "newvendor@x.com")
        assert service.store.get_vendor_status(uid) is VendorStatus.pending
        assert service.ledger.count_for_user(uid) == 0

    def test_client_registration_issues_tokens(self, service, make_client):
        result = service.register_client(make_client())
        assert result.user.role is Role.client
        assert result.user.email_verified is False
        claims = service.issuer.verify(result.tokens.access_token, TokenPurpose.access)
        assert claims["user_id"] == result.user.id
        assert service.ledger.lookup(result.tokens.refresh_token, result.user.id) is not None

    def test_password_is_hashed(self, service, make_client):
        service.register_client(make_client(password="Abcd1234"))
        stored = service.store.find_by_email("c@x.com").password_hash
        assert stored != "Abcd1234"
        assert service.hasher.verify("Abcd1234", stored)

    def test_duplicate_email_across_roles(self, service, make_vendor, make_client):
        service.register_vendor(make_vendor("same@x.com"))
        with pytest.raises(DuplicateEmail):
            service.register_client(make_client("SAME@x.com"))

    def test_race_past_precheck_still_duplicate(self, service, monkeypatch, make_client):
        """Both sign-ups pass the pre-check; the UNIQUE constraint decides."""
        monkeypatch.setattr(service.store, "find_by_email", lambda email: None)
        service.register_client(make_client("race@x.com"))
        with pytest.raises(DuplicateEmail):
            service.register_client(make_client("race@x.com"))

    def test_concurrent_registrations_one_winner(self, service, make_client):
        outcomes: list[str] = []
        lock = threading.Lock()
        barrier = threading.Barrier(2)

        def attempt() -> None:
            barrier.wait()
            try:
                service.register_client(make_client("both@x.com"))
                outcome = "ok"
            except DuplicateEmail:
                outcome = "duplicate"
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=attempt) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert sorted(outcomes) == ["duplicate", "ok"]
        with service.store.engine.connect() as conn:
            count = conn.exec_driver_sql("SELECT COUNT(*) FROM users WHERE email = 'both@x.com'").scalar()
        assert count == 1

    def test_profile_failure_rolls_back_user(self, service, monkeypatch, make_vendor):
        def broken_profile(conn, profile):
            raise IntegrityViolation()

        monkeypatch.setattr(service.store, "create_vendor_profile", broken_profile)
        with pytest.raises(RegistrationFailed):
            service.register_vendor(make_vendor("half@x.com"))
        assert service.store.find_by_email("half@x.com") is None

    def test_store_outage_during_sign_up_is_registration_failed(self, service, monkeypatch, unreachable_engine, make_client):
        monkeypatch.setattr(service.store, "engine", unreachable_engine)
        with pytest.raises(RegistrationFailed):
            service.register_client(make_client("down@x.com"))


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_client_login(self, service, make_client):
        service.register_client(make_client())
        result = service.login("C@X.com", "Abcd1234")
        assert result.user.email == "c@x.com"
        assert service.issuer.verify_access(result.tokens.access_token).role is Role.client

    def test_unknown_email_and_wrong_password_are_identical(self, service, make_client):
        service.register_client(make_client())
        with pytest.raises(InvalidCredentials) as unknown:
            service.login("ghost@x.com", "Abcd1234")
        with pytest.raises(InvalidCredentials) as wrong:
            service.login("c@x.com", "Wrong1234")
        assert type(unknown.value) is type(wrong.value)
        assert unknown.value.code == wrong.value.code
        assert unknown.value.message == wrong.value.message

    def test_inactive_account_checked_before_password(self, service, make_client):
        result = service.register_client(make_client())
        service.store.set_active(result.user.id, False)
        with pytest.raises(AccountInactive):
            service.login("c@x.com", "Abcd1234")
        with pytest.raises(AccountInactive):
            service.login("c@x.com", "Wrong1234")

    @pytest.mark.parametrize(
        "status, error",
        [
            (VendorStatus.pending, PendingApproval),
            (VendorStatus.rejected, Rejected),
            (VendorStatus.suspended, Suspended),
        ],
    )
    def test_vendor_not_approved(self, service, status, error, make_vendor):
        service.register_vendor(make_vendor())
        service.store.set_vendor_status(_user_id(service, "vendor@x.com"), status)
        with pytest.raises(error):
            service.login("vendor@x.com", "Abcd1234")

    def test_vendor_wrong_password_is_invalid_credentials_even_if_pending(self, service, make_vendor):
        service.register_vendor(make_vendor())
        with pytest.raises(InvalidCredentials):
            service.login("vendor@x.com", "Wrong1234")

    def test_approved_vendor_login(self, service, make_vendor):
        uid = _approved_vendor(service, make_vendor)
        result = service.login("vendor@x.com", "Abcd1234")
        assert result.user.id == uid
        assert service.ledger.count_for_user(uid) == 1

    def test_admin_login_skips_approval(self, service):
        with service.store.engine.begin() as conn:
            service.store.create_user(
                conn,
                User(email="admin@x.com", password_hash=service.hasher.hash("Abcd1234"), role=Role.admin),
            )
        result = service.login("admin@x.com", "Abcd1234")
        assert result.user.role is Role.admin

    def test_each_login_adds_a_session(self, service, make_client):
        result = service.register_client(make_client())
        service.login("c@x.com", "Abcd1234")
        assert service.ledger.count_for_user(result.user.id) == 2

    def test_store_outage_at_login_is_store_unavailable(self, service, monkeypatch, unreachable_engine, make_client):
        service.register_client(make_client())
        monkeypatch.setattr(service.store, "engine", unreachable_engine)
        with pytest.raises(StoreUnavailable):
            service.login("c@x.com", "Abcd1234")


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------


class TestRefresh:
    def test_refresh_rotates(self, service, make_client):
        first = service.register_client(make_client())
        second = service.refresh(first.tokens.refresh_token)
        assert second.refresh_token != first.tokens.refresh_token
        assert service.issuer.verify_access(second.access_token).user_id == first.user.id
        assert service.ledger.count_for_user(first.user.id) == 1

    def test_refresh_token_is_single_use(self, service, make_client):
        first = service.register_client(make_client())
        service.refresh(first.tokens.refresh_token)
        with pytest.raises(InvalidRefreshToken):
            service.refresh(first.tokens.refresh_token)

    def test_interleaved_refresh_loses_to_the_first(self, service, make_client):
        """A second caller that looked the row up before the first refresh committed must not rotate."""
        first = service.register_client(make_client())
        token, uid = first.tokens.refresh_token, first.user.id
        stale_row = service.ledger.lookup(token, uid)

        winner = service.refresh(token)
        with pytest.raises(InvalidRefreshToken):
            service.ledger.rotate(stale_row.id, uid, token, service.issuer.issue_refresh_token(uid))

        assert service.ledger.count_for_user(uid) == 1
        assert service.refresh(winner.refresh_token).access_token

    def test_new_refresh_token_works(self, service, make_client):
        first = service.register_client(make_client())
        second = service.refresh(first.tokens.refresh_token)
        third = service.refresh(second.refresh_token)
        assert third.refresh_token not in (first.tokens.refresh_token, second.refresh_token)

    def test_access_token_rejected(self, service, make_client):
        first = service.register_client(make_client())
        with pytest.raises(InvalidRefreshToken):
            service.refresh(first.tokens.access_token)

    @pytest.mark.parametrize("token", ["", "garbage"])
    def test_malformed_token_rejected(self, service, token):
        with pytest.raises(InvalidRefreshToken):
            service.refresh(token)

    def test_expired_row_then_invalid(self, service, make_client):
        first = service.register_client(make_client())
        _expire_all_refresh_tokens(service)
        with pytest.raises(RefreshTokenExpired):
            service.refresh(first.tokens.refresh_token)
        assert service.ledger.count_for_user(first.user.id) == 0
        with pytest.raises(InvalidRefreshToken):
            service.refresh(first.tokens.refresh_token)

    def test_refreshed_claims_follow_current_user(self, service, make_vendor):
        uid = _approved_vendor(service, make_vendor)
        login = service.login("vendor@x.com", "Abcd1234")
        pair = service.refresh(login.tokens.refresh_token)
        principal = service.issuer.verify_access(pair.access_token)
        assert principal.user_id == uid
        assert principal.email == "vendor@x.com"
        assert principal.role is Role.vendor


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------


class TestLogout:
    def test_logout_revokes(self, service, make_client):
        first = service.register_client(make_client())
        assert service.logout(first.tokens.refresh_token) == {"success": True}
        with pytest.raises(InvalidRefreshToken):
            service.refresh(first.tokens.refresh_token)

    def test_logout_is_idempotent(self, service, make_client):
        first = service.register_client(make_client())
        service.logout(first.tokens.refresh_token)
        assert service.logout(first.tokens.refresh_token) == {"success": True}

    @pytest.mark.parametrize("token", [None, "", "never-issued"])
    def test_logout_without_known_token_succeeds(self, service, token):
        assert service.logout(token) == {"success": True}

    def test_logout_leaves_other_sessions(self, service, make_client):
        first = service.register_client(make_client())
        second = service.login("c@x.com", "Abcd1234")
        service.logout(first.tokens.refresh_token)
        assert service.refresh(second.tokens.refresh_token).access_token

    def test_logout_succeeds_when_store_is_down(self, service, monkeypatch, unreachable_engine, make_client):
        first = service.register_client(make_client())
        monkeypatch.setattr(service.ledger, "engine", unreachable_engine)
        assert service.logout(first.tokens.refresh_token) == {"success": True}
        monkeypatch.undo()
        # the failed revoke left the row in place
        assert service.refresh(first.tokens.refresh_token).access_token


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


class TestProfile:
    def test_client_profile(self, service, make_client):
        result = service.register_client(make_client())
        profile = service.get_profile(result.user.id, Role.client)
        assert profile["email"] == "c@x.com"
        assert profile["role"] == "client"
        assert profile["contact_person"] == "Budi"
        assert profile["company_name"] == "CV Client"

    def test_vendor_profile_includes_status(self, service, make_vendor):
        uid = _approved_vendor(service, make_vendor)
        profile = service.get_profile(uid, Role.vendor)
        assert profile["status"] == "approved"
        assert profile["npwp"] == "01.234.567.8-901.000"
        assert "password_hash" not in profile

    def test_unknown_user(self, service):
        with pytest.raises(NotFound):
            service.get_profile(999, Role.client)

    def test_role_without_profile(self, service, make_client):
        result = service.register_client(make_client())
        with pytest.raises(NotFound):
            service.get_profile(result.user.id, Role.vendor)


def test_ledger_ttl_must_match_issuer(service):
    ledger = RefreshTokenLedger(service.ledger.engine, ttl=timedelta(days=1))
    with pytest.raises(ValueError):
        SessionService(service.store, ledger, service.issuer, service.hasher)
