import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, DateTime, Float, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from labinsight.db.session import Base, utcnow


class HealthParameter(Base):
    """One canonical reading. Rows are append-only; a re-upload adds new rows."""

    __tablename__ = "health_parameters"
    __table_args__ = (
        Index("ix_health_parameters_history", "session_token", "parameter_name", "test_date"),
    )

    id: Mapped[str] = mapped_column(String(40), primary_key=True, default=lambda: f"param_{uuid.uuid4().hex}")
    session_token: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    document_id: Mapped[str] = mapped_column(
        String(40), ForeignKey("documents.id", ondelete="CASCADE"), index=True, nullable=False
    )

    parameter_name: Mapped[str] = mapped_column(String(80), nullable=False)
    parameter_value: Mapped[str] = mapped_column(String(32), nullable=False)
    numeric_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    reference_range: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Unknown")
    category: Mapped[str] = mapped_column(String(40), nullable=False, default="General")
    test_date: Mapped[date] = mapped_column(Date, nullable=False)
    date_confidence: Mapped[str] = mapped_column(String(16), nullable=False, default="exact")
    source: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    document = relationship("HealthDocument", back_populates="parameters")

    def to_dict(self) -> dict:
        return {
            "parameter": self.parameter_name,
            "value": self.parameter_value,
            "numericValue": self.numeric_value,
            "unit": self.unit,
            "referenceRange": self.reference_range,
            "status": self.status,
            "category": self.category,
            "date": self.test_date.isoformat() if self.test_date else None,
            "dateConfidence": self.date_confidence,
            "documentId": self.document_id,
        }
