"""
auth/store.py -- SQLAlchemy Core persistence layer for principals and profiles.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_row_to_user / _row_to_vendor / _row_to_client are the mappers. The session
core never touches SQL directly.

Transactions:
  register_vendor() and register_client() insert the User and its profile
  inside one engine.begin() block. If either insert raises, the whole
  transaction rolls back -- no user without a profile is ever visible.

  create_user() and the create_*_profile() methods take the open Connection
  so they can participate in that transaction.

Uniqueness:
  The email pre-check in the session core is only a fast path. The UNIQUE
  constraint on users.email is what makes concurrent sign-ups safe: the loser
  of the race gets IntegrityError on insert, mapped here to DuplicateEmail.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from auth.db import clients, now_iso, store_errors, users, vendors
from auth.errors import DuplicateEmail, IntegrityViolation
from auth.models import ClientProfile, Role, User, VendorProfile, VendorStatus


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CredentialStore:
    """Repository for User, VendorProfile and ClientProfile entities.

    Usage:
        store = CredentialStore(engine)
        user = store.register_client(User(...), ClientProfile(...))
        store.get_vendor_status(user.id)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> User | None:
        """Look up a user by normalized email. Returns None if not found."""
        with store_errors(), self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with store_errors(), self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def create_user(self, conn: Connection, user: User) -> User:
        """Insert a user on an open connection and return it with id and created_at set.

        Raises DuplicateEmail if the email is already taken -- including when
        a concurrent transaction committed the same email after our pre-check.
        """
        created_at = now_iso()
        email = normalize_email(user.email)
        try:
            result = conn.execute(
                users.insert().values(
                    email=email,
                    password_hash=user.password_hash,
                    role=Role(user.role).value,
                    is_active=1 if user.is_active else 0,
                    email_verified=1 if user.email_verified else 0,
                    created_at=created_at,
                )
            )
        except IntegrityError as exc:
            raise DuplicateEmail() from exc
        return User(
            id=result.inserted_primary_key[0],
            email=email,
            password_hash=user.password_hash,
            role=Role(user.role),
            is_active=user.is_active,
            email_verified=user.email_verified,
            created_at=created_at,
        )

    def set_active(self, user_id: int, is_active: bool) -> bool:
        """Activate or deactivate an account. Returns False if user_id was not found."""
        with store_errors(), self.engine.begin() as conn:
            result = conn.execute(users.update().where(users.c.id == user_id).values(is_active=1 if is_active else 0))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def create_vendor_profile(self, conn: Connection, profile: VendorProfile) -> None:
        """Insert a vendor profile. Raises IntegrityViolation if the user already has one."""
        try:
            conn.execute(
                vendors.insert().values(
                    user_id=profile.user_id,
                    company_name=profile.company_name,
                    phone=profile.phone,
                    address=profile.address,
                    npwp=profile.npwp,
                    status=VendorStatus(profile.status).value,
                    registration_type=profile.registration_type,
                    created_at=now_iso(),
                )
            )
        except IntegrityError as exc:
            raise IntegrityViolation("Vendor profile already exists.") from exc

    def create_client_profile(self, conn: Connection, profile: ClientProfile) -> None:
        """Insert a client profile. Raises IntegrityViolation if the user already has one."""
        try:
            conn.execute(
                clients.insert().values(
                    user_id=profile.user_id,
                    company_name=profile.company_name,
                    contact_person=profile.contact_person,
                    phone=profile.phone,
                    address=profile.address,
                    created_at=now_iso(),
                )
            )
        except IntegrityError as exc:
            raise IntegrityViolation("Client profile already exists.") from exc

    def register_vendor(self, user: User, profile: VendorProfile) -> User:
        """Create a vendor principal and its profile as one atomic unit."""
        with store_errors(), self.engine.begin() as conn:
            created = self.create_user(conn, user)
            profile.user_id = created.id
            self.create_vendor_profile(conn, profile)
        return created

    def register_client(self, user: User, profile: ClientProfile) -> User:
        """Create a client principal and its profile as one atomic unit."""
        with store_errors(), self.engine.begin() as conn:
            created = self.create_user(conn, user)
            profile.user_id = created.id
            self.create_client_profile(conn, profile)
        return created

    def get_vendor_status(self, user_id: int) -> VendorStatus | None:
        """Return the vendor's approval status, or None if no vendor profile exists."""
        with store_errors(), self.engine.connect() as conn:
            status = conn.execute(select(vendors.c.status).where(vendors.c.user_id == user_id)).scalar()
        return VendorStatus(status) if status is not None else None

    def get_vendor_profile(self, user_id: int) -> VendorProfile | None:
        with store_errors(), self.engine.connect() as conn:
            row = conn.execute(vendors.select().where(vendors.c.user_id == user_id)).fetchone()
        return _row_to_vendor(row) if row is not None else None

    def get_client_profile(self, user_id: int) -> ClientProfile | None:
        with store_errors(), self.engine.connect() as conn:
            row = conn.execute(clients.select().where(clients.c.user_id == user_id)).fetchone()
        return _row_to_client(row) if row is not None else None

    def set_vendor_status(self, user_id: int, status: VendorStatus | str) -> bool:
        """Move a vendor through the approval workflow.

        Called by the admin CLI, never by the session core. Returns False if
        the user has no vendor profile.
        """
        with store_errors(), self.engine.begin() as conn:
            result = conn.execute(
                vendors.update().where(vendors.c.user_id == user_id).values(status=VendorStatus(status).value)
            )
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        role=Role(row.role),
        is_active=bool(row.is_active),
        email_verified=bool(row.email_verified),
        created_at=row.created_at,
    )


def _row_to_vendor(row) -> VendorProfile:
    return VendorProfile(
        user_id=row.user_id,
        company_name=row.company_name,
        phone=row.phone,
        address=row.address,
        npwp=row.npwp,
        status=VendorStatus(row.status),
        registration_type=row.registration_type,
        created_at=row.created_at,
    )


def _row_to_client(row) -> ClientProfile:
    return ClientProfile(
        user_id=row.user_id,
        company_name=row.company_name,
        contact_person=row.contact_person,
        phone=row.phone,
        address=row.address,
        created_at=row.created_at,
    )
