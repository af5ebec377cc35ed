"""Session dependencies for FastAPI routes.

Sessions are issued by an external auth service; this side only verifies
the anonymous session token that arrives with each request.
"""
from typing import Optional

from fastapi import Depends, Query
from sqlalchemy.orm import Session

from labinsight.db.session import get_db
from labinsight.models.session import AnonymousSession
from labinsight.services.session_store import verify_session
from labinsight.utils.exceptions import SessionError


def require_session(db: Session, token: Optional[str]) -> AnonymousSession:
    """Resolve ``token`` to a live session or raise SessionError (401)."""
    if not token:
        raise SessionError("Session token required")
    session = verify_session(db, token)
    if session is None:
        raise SessionError()
    return session


def get_query_session(
    session: Optional[str] = Query(default=None, description="Anonymous session token"),
    db: Session = Depends(get_db),
) -> AnonymousSession:
    """Session from the ``?session=`` query parameter (GET endpoints)."""
    return require_session(db, session)
