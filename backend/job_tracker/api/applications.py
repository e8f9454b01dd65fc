"""Read endpoints and status moves for the caller's applications."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from job_tracker.auth import get_current_user
from job_tracker.database import get_db
from job_tracker.linking.transitions import REASON_MANUAL, record_status_change
from job_tracker.models import AppStatus, Application, Email, StatusEvent, User
from job_tracker.schemas import (
    ApplicationDetailOut,
    ApplicationOut,
    BoardColumnOut,
    BoardOut,
    EmailOut,
    StatusEventOut,
    StatusUpdateIn,
)

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/applications", tags=["applications"])


def _get_owned_application(db: Session, user: User, application_id: int) -> Application:
    app = (
        db.query(Application)
        .filter(Application.id == application_id, Application.user_id == user.id)
        .first()
    )
    if not app:
        raise HTTPException(status_code=404, detail="Not found")
    return app


@router.get("", response_model=list[ApplicationOut])
def list_applications(
    status: Optional[AppStatus] = Query(None, description="Filter by status"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[ApplicationOut]:
    """List the caller's applications, most recently updated first."""
    query = db.query(Application).filter(Application.user_id == user.id)
    if status:
        query = query.filter(Application.status == status)
    apps = query.order_by(Application.updated_at.desc(), Application.id.desc()).all()

    logger.info("applications_listed", user_id=user.id, count=len(apps))
    return [ApplicationOut.model_validate(app) for app in apps]


@router.get("/board", response_model=BoardOut)
def get_board(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> BoardOut:
    """Group the caller's applications into one column per status."""
    apps = (
        db.query(Application)
        .filter(Application.user_id == user.id)
        .order_by(Application.updated_at.desc(), Application.id.desc())
        .all()
    )

    by_status: dict[AppStatus, list[ApplicationOut]] = {s: [] for s in AppStatus}
    for app in apps:
        by_status[app.status].append(ApplicationOut.model_validate(app))

    columns = [
        BoardColumnOut(status=s, count=len(items), applications=items)
        for s, items in by_status.items()
    ]
    return BoardOut(columns=columns, total=len(apps))


@router.get("/{application_id}", response_model=ApplicationDetailOut)
def get_application(
    application_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> ApplicationDetailOut:
    """Get a single application with its email timeline and status history."""
    app = _get_owned_application(db, user, application_id)

    emails = (
        db.query(Email)
        .filter(Email.application_id == app.id, Email.user_id == user.id)
        .order_by(Email.sent_at.desc())
        .all()
    )
    events = (
        db.query(StatusEvent)
        .filter(StatusEvent.application_id == app.id)
        .order_by(StatusEvent.created_at.desc(), StatusEvent.id.desc())
        .all()
    )

    return ApplicationDetailOut(
        **ApplicationOut.model_validate(app).model_dump(),
        emails=[EmailOut.model_validate(e) for e in emails],
        status_events=[StatusEventOut.model_validate(ev) for ev in events],
    )


@router.patch("/{application_id}/status", response_model=ApplicationOut)
def update_application_status(
    application_id: int,
    body: StatusUpdateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> ApplicationOut:
    """Move an application to another board column."""
    app = _get_owned_application(db, user, application_id)

    changed = record_status_change(
        db,
        app,
        body.status,
        REASON_MANUAL,
        datetime.now(timezone.utc),
    )
    db.commit()
    db.refresh(app)

    logger.info("application_status_set", id=app.id, status=app.status.value, changed=changed)
    return ApplicationOut.model_validate(app)
