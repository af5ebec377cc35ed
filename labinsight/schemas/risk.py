# labinsight/schemas/risk.py
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from labinsight.schemas.documents import ParameterIn


class UserProfile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    age: Optional[int] = Field(default=None, ge=0, le=130)
    sex: Optional[str] = Field(default=None, description="male|female")
    gender: Optional[str] = None


class RiskAssessmentRequest(BaseModel):
    sessionToken: Optional[str] = None
    healthParameters: List[ParameterIn] = Field(default_factory=list)
    userProfile: Optional[UserProfile] = None
