"""
User model: back-office authentication.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from flask_login import UserMixin
from sqlalchemy.orm import Mapped, mapped_column
from werkzeug.security import check_password_hash, generate_password_hash

from zonta.extensions import db

from .mixins import TimestampMixin


class User(db.Model, UserMixin, TimestampMixin):
    """
    Back-office user:
      • Secure auth (Flask-Login compatible)
      • Admin flag + soft ban via is_active
    """

    __tablename__ = "users"

    # ── Identity ────────────────────────────────────────────────
    id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(
        db.String(36),
        unique=True,
        nullable=False,
        default=lambda: str(uuid.uuid4()),
        index=True,
    )
    # ── Auth ────────────────────────────────────────────────────
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    # ── Roles/Status ────────────────────────────────────────────
    is_admin: Mapped[bool] = mapped_column(db.Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(db.Boolean, default=True, nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(db.String(80), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(db.String(80), nullable=True)
    last_login: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)

    # ── Auth helpers ────────────────────────────────────────────
    def set_password(self, password: str) -> None:
        """Hash & store the given plaintext password securely."""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        """Verify a plaintext password against the stored hash."""
        return check_password_hash(self.password_hash, password)

    def get_id(self) -> str:  # type: ignore[override]
        return str(self.id)

    @property
    def display_name(self) -> str:
        full = " ".join(p for p in (self.first_name, self.last_name) if p)
        return full or (self.email.split("@")[0] if self.email else f"User-{self.id}")

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "role": "admin" if self.is_admin else "user",
            "firstName": self.first_name,
            "lastName": self.last_name,
        }

    def __repr__(self) -> str:  # pragma: no cover
        role = "Admin" if self.is_admin else "User"
        return f"<User {self.email} ({role})>"
