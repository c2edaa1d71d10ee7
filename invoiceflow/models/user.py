"""
InvoiceFlow - User Model

Application users and the ordered role hierarchy used for every
authorization decision in the service.

Role Hierarchy (highest first):
    Admin > Head > PMO > PM > Secretary > ReadOnly
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from invoiceflow.models.base import BaseModel


class UserRole(str, Enum):
    """
    User roles, ordered by authority.

    Comparisons go through `level` / `at_least` rather than lists of
    role names so that endpoint checks and the status policy agree.
    """
    READ_ONLY = "ReadOnly"
    SECRETARY = "Secretary"
    PM = "PM"
    PMO = "PMO"
    HEAD = "Head"
    ADMIN = "Admin"

    @property
    def level(self) -> int:
        return _ROLE_LEVELS[self]

    def at_least(self, other: "UserRole") -> bool:
        """True when this role is `other` or ranks above it."""
        return self.level >= other.level

    @classmethod
    def parse(cls, value: str) -> "UserRole":
        """Resolve a role from its value or member name, case-insensitively."""
        cleaned = (value or "").strip().lower()
        for role in cls:
            if cleaned in (role.value.lower(), role.name.lower()):
                return role
        raise ValueError(f"Unknown role: {value!r}")


_ROLE_LEVELS = {
    UserRole.READ_ONLY: 0,
    UserRole.SECRETARY: 1,
    UserRole.PM: 2,
    UserRole.PMO: 3,
    UserRole.HEAD: 4,
    UserRole.ADMIN: 5,
}


class AppUser(BaseModel):
    """Application user account."""

    __tablename__ = "app_users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole),
        default=UserRole.SECRETARY,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def actor_id(self) -> str:
        """Identifier recorded in audit and ledger entries."""
        return self.email

    def __repr__(self) -> str:
        return f"<AppUser(id={self.id}, email={self.email}, role={self.role})>"
