"""Inbound event endpoints (email connectors push parsed mail here)."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from job_tracker.auth import get_current_user
from job_tracker.database import get_db
from job_tracker.ingestion.pipeline import ingest_email
from job_tracker.models import User
from job_tracker.schemas import EmailIngestIn, EmailIngestOut

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/events", tags=["events"])


@router.post("/email-ingested", response_model=EmailIngestOut)
def email_ingested(
    body: EmailIngestIn,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Store a parsed email and link it to an application, creating one if needed."""
    config = request.app.state.config
    user_id = user.id
    try:
        result = ingest_email(
            db,
            user,
            body,
            window_days=config.company_match_window_days,
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "email_ingest_failed",
            user_id=user_id,
            message_id=body.message_id,
            provider_message_id=body.provider_message_id,
        )
        return JSONResponse(status_code=500, content={"ok": False, "error": "Server error"})

    return EmailIngestOut(
        application_id=result.application_id,
        email_id=result.email_id,
        status_changed=result.status_changed,
        new_status=result.new_status,
        linked_via=result.link_method,
    )
