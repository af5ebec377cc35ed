import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from labinsight.db.session import Base, json_col_type, utcnow
from labinsight.utils.encryption import EncryptedText


class RiskAssessmentRecord(Base):
    __tablename__ = "risk_assessments"

    id: Mapped[str] = mapped_column(String(40), primary_key=True, default=lambda: f"risk_{uuid.uuid4().hex}")
    session_token: Mapped[str] = mapped_column(
        String(64), ForeignKey("anonymous_sessions.session_token", ondelete="CASCADE"), index=True, nullable=False
    )
    overall_score: Mapped[int] = mapped_column(Integer, nullable=False)
    overall_level: Mapped[str] = mapped_column(String(16), nullable=False)
    category_scores: Mapped[dict] = mapped_column(json_col_type(), nullable=False)
    parameter_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    insights: Mapped[Optional[str]] = mapped_column(EncryptedText, nullable=True)
    llm_used: Mapped[bool] = mapped_column(default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
