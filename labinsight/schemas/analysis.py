# labinsight/schemas/analysis.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class AnalyzeRequest(BaseModel):
    healthData: Optional[str] = Field(default=None, max_length=20000)


class AnalyzeResponse(BaseModel):
    success: bool = True
    analysis: str
    model: str
    timestamp: datetime
