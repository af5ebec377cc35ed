from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ..auth.deps import require_session
from ..db.session import get_db
from ..schemas.risk import RiskAssessmentRequest
from ..services.gemini import CompletionClient, get_completion_client
from ..services.risk import assess_risk
from ..utils.rate_limit import RISK_LIMIT, limiter

router = APIRouter()


@router.post("/risk-assessment")
@limiter.limit(RISK_LIMIT)
async def risk_assessment(
    request: Request,
    body: RiskAssessmentRequest,
    db: Session = Depends(get_db),
    llm_client: Optional[CompletionClient] = Depends(get_completion_client),
):
    session = require_session(db, body.sessionToken)
    if not body.healthParameters:
        raise HTTPException(status_code=400, detail="Health parameters required")
    profile = body.userProfile.model_dump() if body.userProfile else {}
    parameters = [p.model_dump() for p in body.healthParameters]
    result = await assess_risk(db, session, parameters, profile, llm_client)
    return {"success": True, "riskAssessment": result}
