"""Resolve which application an inbound email belongs to.

Linking strategies (in priority order):
0. Existing link - a re-ingested email keeps the application it already has
1. In-Reply-To match - the email answers one we already linked
2. References match - an earlier message of the conversation is linked
3. Provider thread match - same provider conversation id (e.g. Gmail thread)
4. Recent company match - same company, active within the match window
5. Create new - no match found

Every lookup is scoped to the calling user's rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import structlog
from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session

from job_tracker.models import Application, Email

logger = structlog.get_logger(__name__)

DEFAULT_MATCH_WINDOW_DAYS = 60


@dataclass(frozen=True)
class LinkResult:
    """Result of attempting to link an email to an application."""

    application: Optional[Application] = None
    link_method: str = "new"  # "existing", "in_reply_to", "references", "provider_thread", "company", "new"

    @property
    def is_linked(self) -> bool:
        """Return True if email was linked to an existing application."""
        return self.application is not None

    @property
    def application_id(self) -> Optional[int]:
        return self.application.id if self.application is not None else None


NO_MATCH = LinkResult()


def _linked_emails(session: Session, user_id: int) -> Query:
    return session.query(Email).filter(
        Email.user_id == user_id,
        Email.application_id.isnot(None),
    )


def _owned_application(session: Session, user_id: int, email: Optional[Email]) -> Optional[Application]:
    if email is None or email.application_id is None:
        return None
    return (
        session.query(Application)
        .filter(Application.id == email.application_id, Application.user_id == user_id)
        .first()
    )


# ---------------------------------------------------------------------------
# Tier 0: existing link
# ---------------------------------------------------------------------------

def resolve_by_existing_link(session: Session, user_id: int, email: Optional[Email]) -> LinkResult:
    """Keep a re-ingested email on the application it is already linked to."""
    app = _owned_application(session, user_id, email)
    if app is None:
        return NO_MATCH

    logger.debug("linked_by_existing_link", user_id=user_id, application_id=app.id, email_id=email.id)
    return LinkResult(application=app, link_method="existing")


# ---------------------------------------------------------------------------
# Tiers 1-3: conversation linking
# ---------------------------------------------------------------------------

def resolve_by_thread(
    session: Session,
    user_id: int,
    in_reply_to: Optional[str] = None,
    references: Optional[Sequence[str]] = None,
    provider_thread_id: Optional[str] = None,
) -> LinkResult:
    """Find the application of an earlier email in the same conversation.

    Args:
        session: Database session.
        user_id: Owner whose emails are searched.
        in_reply_to: In-Reply-To header of the new email.
        references: Message ids from the References header.
        provider_thread_id: Provider conversation id (Gmail threadId etc).

    Returns:
        LinkResult naming the tier that matched, or ``NO_MATCH``.
    """
    if in_reply_to:
        hit = (
            _linked_emails(session, user_id)
            .filter(or_(Email.message_id == in_reply_to, Email.provider_message_id == in_reply_to))
            .first()
        )
        app = _owned_application(session, user_id, hit)
        if app is not None:
            logger.info("linked_by_in_reply_to", user_id=user_id, application_id=app.id, email_id=hit.id)
            return LinkResult(application=app, link_method="in_reply_to")

    refs = [r for r in references or () if r]
    if refs:
        hit = _linked_emails(session, user_id).filter(Email.message_id.in_(refs)).first()
        app = _owned_application(session, user_id, hit)
        if app is not None:
            logger.info("linked_by_references", user_id=user_id, application_id=app.id, email_id=hit.id)
            return LinkResult(application=app, link_method="references")

    if provider_thread_id:
        hit = (
            _linked_emails(session, user_id)
            .filter(Email.provider_thread_id == provider_thread_id)
            .first()
        )
        app = _owned_application(session, user_id, hit)
        if app is not None:
            logger.info(
                "linked_by_provider_thread",
                user_id=user_id,
                application_id=app.id,
                provider_thread_id=provider_thread_id,
            )
            return LinkResult(application=app, link_method="provider_thread")

    logger.debug("thread_link_no_match", user_id=user_id)
    return NO_MATCH


# ---------------------------------------------------------------------------
# Tier 4: recent company fallback
# ---------------------------------------------------------------------------

def resolve_by_recent_company(
    session: Session,
    user_id: int,
    company: Optional[str],
    now: Optional[datetime] = None,
    window_days: int = DEFAULT_MATCH_WINDOW_DAYS,
) -> LinkResult:
    """Link to the user's most recently updated application at ``company``.

    The company comparison is case-insensitive and only applications updated
    within ``window_days`` of ``now`` are candidates, so a follow-up from the
    same company without thread headers does not open a duplicate row.
    """
    if not company:
        return NO_MATCH

    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=window_days)
    app = (
        session.query(Application)
        .filter(
            Application.user_id == user_id,
            func.lower(Application.company) == company.strip().lower(),
            Application.updated_at >= cutoff,
        )
        .order_by(Application.updated_at.desc())
        .first()
    )
    if app is None:
        logger.debug("company_link_no_match", user_id=user_id, company=company, window_days=window_days)
        return NO_MATCH

    logger.info("linked_by_company", user_id=user_id, application_id=app.id, company=company)
    return LinkResult(application=app, link_method="company")
