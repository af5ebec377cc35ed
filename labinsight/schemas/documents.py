# labinsight/schemas/documents.py
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ParameterIn(BaseModel):
    """A reading as returned by /api/extract (extra keys are ignored)."""

    model_config = ConfigDict(extra="ignore")

    parameter: str = Field(..., min_length=1, max_length=80)
    value: Union[str, float]
    unit: Optional[str] = ""
    date: Optional[str] = None
    source: Optional[str] = None


class DocumentsRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    action: Literal["store", "list", "delete", "analyze-trends"]
    sessionToken: Optional[str] = None

    # store
    documentName: Optional[str] = Field(default=None, max_length=255)
    documentType: Optional[str] = Field(default=None, max_length=80)
    testDate: Optional[str] = None
    healthParameters: List[ParameterIn] = Field(default_factory=list)
    analysis: Optional[str] = None
    sex: Optional[str] = Field(default=None, description="male|female")

    # delete
    documentId: Optional[str] = None
    hard: bool = False

    # analyze-trends
    parameters: Optional[List[str]] = None
    timeRange: str = "1year"
