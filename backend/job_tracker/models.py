"""SQLAlchemy ORM models for all database tables."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always comes back in UTC.

    SQLite keeps no offset, so values are normalized to UTC on the way in
    and tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class AppStatus(str, enum.Enum):
    """Board columns an application can sit in."""

    APPLIED = "APPLIED"
    INTERVIEWING = "INTERVIEWING"
    REJECTED = "REJECTED"
    OFFER = "OFFER"
    OTHER = "OTHER"


# Stored as VARCHAR; values are checked on the way in
_status_type = Enum(AppStatus, native_enum=False, length=20, validate_strings=True)


class Base(DeclarativeBase):
    """Shared declarative base for all models."""


class User(Base):
    """An account that owns applications and emails."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_utcnow
    )

    applications: Mapped[list[Application]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"


class Application(Base):
    """A tracked job application."""

    __tablename__ = "applications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    company: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    role_title: Mapped[str] = mapped_column(String(300), nullable=False, default="Unknown")
    status: Mapped[AppStatus] = mapped_column(
        _status_type, nullable=False, default=AppStatus.APPLIED, index=True
    )
    last_activity_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_utcnow, onupdate=_utcnow, index=True
    )

    # Relationships
    user: Mapped[User] = relationship(back_populates="applications")
    status_events: Mapped[list[StatusEvent]] = relationship(
        back_populates="application", cascade="all, delete-orphan", order_by="StatusEvent.created_at"
    )
    emails: Mapped[list[Email]] = relationship(back_populates="application")

    def __repr__(self) -> str:
        return (
            f"<Application id={self.id} user_id={self.user_id} company={self.company!r} "
            f"role={self.role_title!r} status={self.status!r}>"
        )


class StatusEvent(Base):
    """Append-only audit trail of application status changes."""

    __tablename__ = "status_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status: Mapped[AppStatus | None] = mapped_column(_status_type, nullable=True)
    to_status: Mapped[AppStatus] = mapped_column(_status_type, nullable=False)
    reason: Mapped[str] = mapped_column(String(20), nullable=False, default="auto")  # 'auto' | 'manual'
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_utcnow
    )

    application: Mapped[Application] = relationship(back_populates="status_events")

    def __repr__(self) -> str:
        return f"<StatusEvent app_id={self.application_id} {self.from_status!r}->{self.to_status!r}>"


class Email(Base):
    """An inbound email, stored once per user and message id."""

    __tablename__ = "emails"
    __table_args__ = (
        UniqueConstraint("user_id", "message_id", name="uq_email_user_message_id"),
        UniqueConstraint("user_id", "provider_message_id", name="uq_email_user_provider_message_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    application_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("applications.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Identifiers used for thread linking
    provider: Mapped[str | None] = mapped_column(String(50), nullable=True)
    provider_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    provider_thread_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    message_id: Mapped[str | None] = mapped_column(String(512), nullable=True, index=True)
    in_reply_to: Mapped[str | None] = mapped_column(String(512), nullable=True)

    from_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    from_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    to_emails: Mapped[str | None] = mapped_column(Text, nullable=True)  # comma-joined
    cc_emails: Mapped[str | None] = mapped_column(Text, nullable=True)  # comma-joined
    sent_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    snippet: Mapped[str | None] = mapped_column(Text, nullable=True)
    body_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    body_html: Mapped[str | None] = mapped_column(Text, nullable=True)
    headers: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    application: Mapped[Application | None] = relationship(back_populates="emails")

    @property
    def references(self) -> list[str]:
        """Reference ids as recorded in the stored headers."""
        refs = (self.headers or {}).get("references") or []
        return [r for r in refs if isinstance(r, str)]

    def __repr__(self) -> str:
        return (
            f"<Email id={self.id} message_id={self.message_id!r} "
            f"thread={self.provider_thread_id!r} app_id={self.application_id}>"
        )
