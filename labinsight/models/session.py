from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from labinsight.db.session import Base, utcnow


class AnonymousSession(Base):
    """Pseudonymous caller identity. Issued by the external auth service; only read here."""

    __tablename__ = "anonymous_sessions"

    session_token: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_email_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    last_activity: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    document_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    documents: Mapped[List["HealthDocument"]] = relationship(
        "HealthDocument",
        back_populates="session",
        cascade="all, delete-orphan",
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= (now or utcnow())
