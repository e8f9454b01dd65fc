"""Ingestion pipeline: stores an inbound email and links it to an application."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from sqlalchemy.orm import Session

from job_tracker.email.parser import as_utc, build_snippet, company_from_sender, join_addresses
from job_tracker.linking.resolver import (
    DEFAULT_MATCH_WINDOW_DAYS,
    LinkResult,
    resolve_by_existing_link,
    resolve_by_recent_company,
    resolve_by_thread,
)
from job_tracker.linking.transitions import (
    REASON_AUTO,
    create_application,
    record_status_change,
    to_status,
)
from job_tracker.models import AppStatus, Email, User
from job_tracker.schemas import EmailIngestIn

logger = structlog.get_logger(__name__)

UNKNOWN = "Unknown"


@dataclass
class IngestResult:
    """Outcome of ingesting one email."""

    application_id: int
    email_id: int
    status_changed: bool
    new_status: AppStatus
    link_method: str
    email_created: bool
    application_created: bool


def _stored_headers(payload: EmailIngestIn) -> dict[str, Any]:
    """Supplied headers plus the linking ids that have no column of their own."""
    headers: dict[str, Any] = dict(payload.headers or {})
    if payload.headers is not None or payload.provider_thread_id:
        headers["providerThreadId"] = payload.provider_thread_id
    if payload.reference_ids:
        headers["references"] = payload.reference_ids
    return headers


def _find_existing_email(session: Session, user_id: int, payload: EmailIngestIn) -> Optional[Email]:
    """Look the email up by client message id, then by provider message id."""
    existing = None
    if payload.message_id:
        existing = (
            session.query(Email)
            .filter(Email.user_id == user_id, Email.message_id == payload.message_id)
            .first()
        )
    if existing is None and payload.provider_message_id:
        existing = (
            session.query(Email)
            .filter(Email.user_id == user_id, Email.provider_message_id == payload.provider_message_id)
            .first()
        )
    return existing


def upsert_email(session: Session, user_id: int, payload: EmailIngestIn) -> tuple[Email, bool]:
    """Insert the email or update the row already stored for its message id.

    Returns (email, created) where created=True for new rows.
    """
    fields = dict(
        provider=payload.provider,
        provider_message_id=payload.provider_message_id,
        provider_thread_id=payload.provider_thread_id,
        message_id=payload.message_id,
        in_reply_to=payload.in_reply_to,
        from_name=payload.from_name,
        from_email=payload.from_email,
        to_emails=join_addresses(payload.to),
        cc_emails=join_addresses(payload.cc),
        sent_at=as_utc(payload.sent_at),
        subject=payload.subject,
        snippet=payload.snippet or build_snippet(payload.body_text, payload.body_html),
        body_text=payload.body_text,
        body_html=payload.body_html,
        headers=_stored_headers(payload),
    )

    existing = _find_existing_email(session, user_id, payload)
    if existing is not None:
        for name, value in fields.items():
            setattr(existing, name, value)
        session.flush()
        logger.info("email_updated", email_id=existing.id, message_id=payload.message_id)
        return existing, False

    email = Email(user_id=user_id, **fields)
    session.add(email)
    session.flush()
    logger.info("email_stored", email_id=email.id, message_id=payload.message_id)
    return email, True


def company_guess(payload: EmailIngestIn) -> str:
    """Explicit inferred company, else the sender's domain, else "Unknown"."""
    inferred = (payload.inferred_company or "").strip()
    return inferred or company_from_sender(payload.from_email) or UNKNOWN


def ingest_email(
    session: Session,
    user: User,
    payload: EmailIngestIn,
    now: Optional[datetime] = None,
    window_days: int = DEFAULT_MATCH_WINDOW_DAYS,
) -> IngestResult:
    """Store ``payload`` for ``user`` and move its application along.

    Steps:
        1. Upsert the email row (idempotent on message ids).
        2. Keep the application the email is already linked to, if any.
           Otherwise resolve it through the conversation headers.
        3. Otherwise fall back to a recent application at the same company.
        4. Otherwise create a new application.
        5. Link the email and record any status transition.

    Nothing is committed here; the caller owns the transaction.
    """
    now = now or datetime.now(timezone.utc)
    sent_at = as_utc(payload.sent_at)

    email, email_created = upsert_email(session, user.id, payload)

    link: LinkResult = resolve_by_existing_link(session, user.id, email)
    if not link.is_linked:
        link = resolve_by_thread(
            session,
            user.id,
            in_reply_to=payload.in_reply_to,
            references=payload.reference_ids,
            provider_thread_id=payload.provider_thread_id,
        )
    company = company_guess(payload)
    if not link.is_linked:
        link = resolve_by_recent_company(session, user.id, company, now=now, window_days=window_days)

    desired = to_status(payload.classification)
    application_created = False
    if link.is_linked:
        app = link.application
        status_changed = record_status_change(session, app, desired, REASON_AUTO, sent_at)
        if not status_changed:
            app.last_activity_at = sent_at
    else:
        role_title = (payload.inferred_role or "").strip() or UNKNOWN
        app = create_application(session, user.id, company, role_title, desired, sent_at)
        application_created = True
        status_changed = True

    if email.application_id != app.id:
        email.application_id = app.id
    session.flush()

    logger.info(
        "email_ingested",
        user_id=user.id,
        email_id=email.id,
        application_id=app.id,
        link_method=link.link_method,
        email_created=email_created,
        application_created=application_created,
        status_changed=status_changed,
        status=app.status.value,
    )
    return IngestResult(
        application_id=app.id,
        email_id=email.id,
        status_changed=status_changed,
        new_status=app.status,
        link_method=link.link_method,
        email_created=email_created,
        application_created=application_created,
    )
