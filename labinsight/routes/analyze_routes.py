from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request

from ..schemas.analysis import AnalyzeRequest, AnalyzeResponse
from ..services.gemini import GEMINI_MODEL, CompletionClient, get_completion_client
from ..services.summarizer import analyze_health_text
from ..utils.rate_limit import ANALYZE_LIMIT, limiter

router = APIRouter()


@router.post("/analyze", response_model=AnalyzeResponse)
@limiter.limit(ANALYZE_LIMIT)
async def analyze(
    request: Request,
    body: AnalyzeRequest,
    llm_client: Optional[CompletionClient] = Depends(get_completion_client),
):
    analysis = await analyze_health_text(body.healthData, llm_client)
    return AnalyzeResponse(
        analysis=analysis,
        model=getattr(llm_client, "model", GEMINI_MODEL),
        timestamp=datetime.now(timezone.utc),
    )
