"""Pydantic schemas for API request/response validation.

JSON keys are camelCase on the wire (``roleTitle``, ``sentAt`` ...) to match
the board front end; Python attributes stay snake_case.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from job_tracker.models import AppStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ── Ingestion schemas ─────────────────────────────────────


class EmailAddressIn(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None


class EmailIngestIn(CamelModel):
    """Parsed inbound email pushed by a mail connector."""

    provider: Optional[str] = Field(None, max_length=50)
    provider_message_id: Optional[str] = Field(None, max_length=255)
    provider_thread_id: Optional[str] = Field(None, max_length=255)
    message_id: Optional[str] = Field(None, max_length=512)
    in_reply_to: Optional[str] = Field(None, max_length=512)
    references: Optional[List[str]] = None
    from_: Optional[EmailAddressIn] = Field(None, alias="from")
    to: Optional[List[str]] = None
    cc: Optional[List[str]] = None
    sent_at: Optional[datetime] = None
    subject: Optional[str] = None
    snippet: Optional[str] = None
    body_text: Optional[str] = None
    body_html: Optional[str] = None
    headers: Optional[dict[str, Any]] = None
    classification: Optional[str] = None
    inferred_company: Optional[str] = Field(None, max_length=200)
    inferred_role: Optional[str] = Field(None, max_length=300)

    @model_validator(mode="after")
    def _check_required(self) -> "EmailIngestIn":
        # Empty strings count as missing
        if not self.message_id and not (self.provider and self.provider_message_id):
            raise ValueError("Missing messageId and providerMessageId")
        if not self.provider or not self.sent_at or not self.subject:
            raise ValueError("Missing provider/sentAt/subject")
        return self

    @property
    def from_email(self) -> Optional[str]:
        return self.from_.email if self.from_ else None

    @property
    def from_name(self) -> Optional[str]:
        return self.from_.name if self.from_ else None

    @property
    def reference_ids(self) -> list[str]:
        return [r.strip() for r in self.references or [] if r and r.strip()]


class EmailIngestOut(CamelModel):
    ok: bool = True
    application_id: int
    email_id: int
    status_changed: bool
    new_status: AppStatus
    linked_via: str = "new"


# ── Application schemas ───────────────────────────────────


class StatusUpdateIn(CamelModel):
    """Request body for moving an application to another board column."""

    status: AppStatus


class StatusEventOut(CamelModel):
    id: int
    application_id: int
    from_status: Optional[AppStatus] = None
    to_status: AppStatus
    reason: str
    created_at: Optional[datetime] = None


class EmailOut(CamelModel):
    id: int
    application_id: Optional[int] = None
    provider: Optional[str] = None
    provider_message_id: Optional[str] = None
    provider_thread_id: Optional[str] = None
    message_id: Optional[str] = None
    in_reply_to: Optional[str] = None
    from_name: Optional[str] = None
    from_email: Optional[str] = None
    to_emails: Optional[str] = None
    cc_emails: Optional[str] = None
    sent_at: datetime
    subject: str
    snippet: Optional[str] = None
    body_text: Optional[str] = None


class ApplicationOut(CamelModel):
    id: int
    user_id: int
    company: str
    role_title: str
    status: AppStatus
    last_activity_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ApplicationDetailOut(ApplicationOut):
    """Application with its email timeline and status history."""

    emails: List[EmailOut] = []
    status_events: List[StatusEventOut] = []


class BoardColumnOut(CamelModel):
    status: AppStatus
    count: int
    applications: List[ApplicationOut]


class BoardOut(CamelModel):
    columns: List[BoardColumnOut]
    total: int
