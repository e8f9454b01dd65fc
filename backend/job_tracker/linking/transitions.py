"""Status taxonomy and the append-only status event log."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from job_tracker.models import AppStatus, Application, StatusEvent

logger = structlog.get_logger(__name__)

REASON_AUTO = "auto"
REASON_MANUAL = "manual"

_CLASSIFIED_STATUSES = {
    AppStatus.APPLIED.value: AppStatus.APPLIED,
    AppStatus.INTERVIEWING.value: AppStatus.INTERVIEWING,
    AppStatus.REJECTED.value: AppStatus.REJECTED,
    AppStatus.OFFER.value: AppStatus.OFFER,
}


def to_status(classification: Optional[str]) -> AppStatus:
    """Map a free-text classification hint onto a board status.

    Matching is case-insensitive; anything unrecognized (or missing) is OTHER.

    Examples:
        to_status("applied")       -> AppStatus.APPLIED
        to_status("Interviewing")  -> AppStatus.INTERVIEWING
        to_status("newsletter")    -> AppStatus.OTHER
        to_status(None)            -> AppStatus.OTHER
    """
    return _CLASSIFIED_STATUSES.get((classification or "").upper(), AppStatus.OTHER)


def create_application(
    session: Session,
    user_id: int,
    company: str,
    role_title: str,
    status: AppStatus,
    activity_at: Optional[datetime],
    reason: str = REASON_AUTO,
) -> Application:
    """Insert a new application and its opening status event (from = None)."""
    app = Application(
        user_id=user_id,
        company=company,
        role_title=role_title,
        status=status,
        last_activity_at=activity_at,
    )
    session.add(app)
    session.flush()

    session.add(
        StatusEvent(
            application_id=app.id,
            from_status=None,
            to_status=status,
            reason=reason,
        )
    )
    logger.info(
        "application_created",
        app_id=app.id,
        user_id=user_id,
        company=company,
        role_title=role_title,
        status=status.value,
    )
    return app


def record_status_change(
    session: Session,
    app: Application,
    new_status: AppStatus,
    reason: str,
    activity_at: Optional[datetime],
) -> bool:
    """Move ``app`` to ``new_status`` and log the transition.

    Returns True if the status changed. A no-op leaves both the application
    and the event log untouched; callers decide whether to bump activity.
    """
    if new_status == app.status:
        return False

    old = app.status
    session.add(
        StatusEvent(
            application_id=app.id,
            from_status=old,
            to_status=new_status,
            reason=reason,
        )
    )
    app.status = new_status
    app.last_activity_at = activity_at
    logger.info("status_updated", app_id=app.id, old=old.value, new=new_status.value, reason=reason)
    return True
