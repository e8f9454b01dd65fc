"""Caller identity resolution.

Routes depend on :func:`get_current_user`, which delegates to whatever
:class:`IdentityResolver` is attached to ``app.state.identity_resolver``.
The shipped resolver trusts an identifying request header and creates the
user row on first sight; swap it for a real authenticator without touching
the routes.
"""

from __future__ import annotations

from typing import Optional, Protocol

import structlog
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from job_tracker.database import get_db
from job_tracker.models import User

logger = structlog.get_logger(__name__)


class IdentityError(Exception):
    """Raised when a request does not identify a user."""


class IdentityResolver(Protocol):
    def resolve(self, request: Request, session: Session) -> User:
        """Return the calling user or raise :class:`IdentityError`."""
        ...


def get_or_create_user(session: Session, email: str) -> User:
    """Return the user with ``email``, creating the row if needed."""
    user = session.query(User).filter(User.email == email).first()
    if user is None:
        user = User(email=email)
        session.add(user)
        session.flush()
        logger.info("user_created", user_id=user.id)
    return user


class HeaderIdentityResolver:
    """Identify the caller by the value of a request header."""

    def __init__(self, header_name: str = "x-user-email") -> None:
        self.header_name = header_name

    def resolve(self, request: Request, session: Session) -> User:
        value: Optional[str] = request.headers.get(self.header_name)
        if not value or not value.strip():
            raise IdentityError(f"Missing {self.header_name}")
        return get_or_create_user(session, value.strip())


def get_identity_resolver(request: Request) -> IdentityResolver:
    resolver = getattr(request.app.state, "identity_resolver", None)
    if resolver is None:
        raise RuntimeError("No identity resolver configured on the app")
    return resolver


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> User:
    """FastAPI dependency returning the authenticated caller."""
    try:
        return resolver.resolve(request, db)
    except IdentityError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
