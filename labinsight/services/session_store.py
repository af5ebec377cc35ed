"""Persistence for sessions, documents and parameter history."""
from __future__ import annotations

import logging
import secrets
import string
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from labinsight.db.session import utcnow
from labinsight.models.document import STATUS_ACTIVE, STATUS_DELETED, HealthDocument
from labinsight.models.parameter import HealthParameter
from labinsight.models.session import AnonymousSession
from labinsight.services.candidates import CanonicalParameter

logger = logging.getLogger("labinsight")

TOKEN_PREFIX = "anon_"
TOKEN_LENGTH = 32
_TOKEN_ALPHABET = string.ascii_letters + string.digits


def verify_session(db: Session, token: Optional[str]) -> Optional[AnonymousSession]:
    """Return the live session for ``token`` and touch ``last_activity``; None if unknown or expired."""
    if not token:
        return None
    session = db.get(AnonymousSession, token)
    if session is None or session.is_expired():
        return None
    session.last_activity = utcnow()
    db.commit()
    return session


def open_session(db: Session, ttl_days: int = 365, email_hash: Optional[str] = None) -> AnonymousSession:
    """Create a session row. Only the seeding script and tests call this."""
    token = TOKEN_PREFIX + "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))
    now = utcnow()
    session = AnonymousSession(
        session_token=token,
        user_email_hash=email_hash,
        created_at=now,
        last_activity=now,
        expires_at=now + timedelta(days=ttl_days),
        document_count=0,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def persist_document(
    db: Session,
    session: AnonymousSession,
    document_name: str,
    parameters: Sequence[CanonicalParameter],
    document_type: str = "Lab Results",
    test_date: Optional[date] = None,
    analysis: Optional[str] = None,
    raw_payload: Optional[List[Dict[str, Any]]] = None,
) -> HealthDocument:
    """Store a document and one row per canonical parameter in a single commit."""
    document = HealthDocument(
        session_token=session.session_token,
        document_name=document_name,
        document_type=document_type,
        test_date=test_date,
        analysis_result=analysis,
        raw_payload=raw_payload,
        parameter_count=len(parameters),
        status=STATUS_ACTIVE,
    )
    for item in parameters:
        document.parameters.append(
            HealthParameter(
                session_token=session.session_token,
                parameter_name=item.parameter,
                parameter_value=item.value,
                numeric_value=item.numeric_value,
                unit=item.unit,
                reference_range=item.reference_range,
                status=item.status,
                category=item.category,
                test_date=item.test_date,
                date_confidence=item.date_confidence,
                source=item.source.value,
            )
        )
    db.add(document)
    session.document_count = (session.document_count or 0) + 1
    session.last_activity = utcnow()
    db.commit()
    db.refresh(document)
    logger.info({
        "function": "persist_document",
        "document_id": document.id,
        "parameters": len(parameters),
    })
    return document


def parameter_history(
    db: Session,
    session_token: str,
    names: Optional[Iterable[str]] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    limit: Optional[int] = None,
) -> List[HealthParameter]:
    """Readings from active documents, oldest test date first.

    ``limit`` keeps the most recent rows.
    """
    query = (
        db.query(HealthParameter)
        .join(HealthDocument, HealthParameter.document_id == HealthDocument.id)
        .filter(HealthParameter.session_token == session_token, HealthDocument.status == STATUS_ACTIVE)
    )
    names = [n for n in (names or []) if n]
    if names:
        query = query.filter(HealthParameter.parameter_name.in_(names))
    if start is not None:
        query = query.filter(HealthParameter.test_date >= start)
    if end is not None:
        query = query.filter(HealthParameter.test_date <= end)
    if limit:
        query = query.order_by(HealthParameter.test_date.desc(), HealthParameter.created_at.desc())
        return list(reversed(query.limit(limit).all()))
    query = query.order_by(HealthParameter.test_date.asc(), HealthParameter.created_at.asc())
    return query.all()


def list_documents(db: Session, session: AnonymousSession, include_parameters: bool = True) -> List[Dict[str, Any]]:
    documents = (
        db.query(HealthDocument)
        .filter(HealthDocument.session_token == session.session_token, HealthDocument.status == STATUS_ACTIVE)
        .order_by(HealthDocument.created_at.desc())
        .all()
    )
    out = []
    for doc in documents:
        item = {
            "documentId": doc.id,
            "documentName": doc.document_name,
            "documentType": doc.document_type,
            "testDate": doc.test_date.isoformat() if doc.test_date else None,
            "parameterCount": doc.parameter_count,
            "createdAt": doc.created_at.isoformat() if doc.created_at else None,
            "analysis": doc.analysis_result,
        }
        if include_parameters:
            item["parameters"] = [p.to_dict() for p in doc.parameters]
        out.append(item)
    return out


def delete_document(db: Session, session: AnonymousSession, document_id: str, hard: bool = False) -> bool:
    """Soft delete by default (hidden from lists and history); ``hard`` removes rows.

    Returns False when the document does not exist or belongs to another session.
    """
    document = (
        db.query(HealthDocument)
        .filter(HealthDocument.id == document_id, HealthDocument.session_token == session.session_token)
        .first()
    )
    if document is None:
        return False
    was_active = document.status == STATUS_ACTIVE
    if hard:
        db.delete(document)
    elif was_active:
        document.status = STATUS_DELETED
        document.deleted_at = utcnow()
    else:
        return True
    if was_active:
        session.document_count = max(0, (session.document_count or 0) - 1)
    db.commit()
    logger.info({"function": "delete_document", "document_id": document_id, "hard": hard})
    return True
