import uuid
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from labinsight.db.session import Base, utcnow
from labinsight.utils.encryption import EncryptedJSON, EncryptedText

STATUS_ACTIVE = "active"
STATUS_DELETED = "deleted"


class HealthDocument(Base):
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(40), primary_key=True, default=lambda: f"doc_{uuid.uuid4().hex}")
    session_token: Mapped[str] = mapped_column(
        String(64), ForeignKey("anonymous_sessions.session_token", ondelete="CASCADE"), index=True, nullable=False
    )

    document_name: Mapped[str] = mapped_column(String(255), nullable=False)
    document_type: Mapped[str] = mapped_column(String(80), nullable=False, default="Lab Results")
    test_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Free-text analysis and the submitted payload are encrypted at rest
    analysis_result: Mapped[Optional[str]] = mapped_column(EncryptedText, nullable=True)
    raw_payload: Mapped[Optional[list]] = mapped_column(EncryptedJSON, nullable=True)

    parameter_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_ACTIVE, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    session = relationship("AnonymousSession", back_populates="documents")
    parameters: Mapped[List["HealthParameter"]] = relationship(
        "HealthParameter",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="HealthParameter.created_at",
    )
