"""
auth/models.py -- Domain dataclasses and enums for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the session
service do the work; these types only own the domain shape.

Role and VendorStatus are closed str enums: the set of roles and approval
states is exhaustive, and the session core dispatches on them with match
statements instead of comparing raw strings.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    vendor = "vendor"
    client = "client"
    admin = "admin"


class VendorStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    suspended = "suspended"


@dataclass
class User:
    """A principal. email is stored lower-cased and stripped.

    id is None before the record is written to the database.
    """

    email: str
    password_hash: str
    role: Role
    id: int | None = None
    is_active: bool = True
    email_verified: bool = False
    created_at: str | None = None


@dataclass
class VendorProfile:
    """Vendor company details plus the approval state read at login."""

    user_id: int | None
    company_name: str
    phone: str
    address: str
    npwp: str | None = None
    status: VendorStatus = VendorStatus.pending
    registration_type: str = "self_register"
    created_at: str | None = None


@dataclass
class ClientProfile:
    user_id: int | None
    contact_person: str
    phone: str
    company_name: str | None = None
    address: str | None = None
    created_at: str | None = None


@dataclass
class RefreshToken:
    """One ledger row. expires_at is an ISO 8601 UTC timestamp."""

    user_id: int
    token: str
    expires_at: str
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class Principal:
    """Identity decoded from a verified access token."""

    user_id: int
    email: str
    role: Role


@dataclass
class VendorRegistration:
    """A syntactically validated vendor sign-up request."""

    email: str
    password: str
    company_name: str
    phone: str
    address: str
    npwp: str | None = None


@dataclass
class ClientRegistration:
    """A syntactically validated client sign-up request."""

    email: str
    password: str
    contact_person: str
    phone: str
    company_name: str | None = None
    address: str | None = None


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a credential-issuing operation: who, plus the new tokens."""

    user: User
    tokens: TokenPair
