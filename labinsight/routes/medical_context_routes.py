from fastapi import APIRouter, Depends, Request

from ..schemas.medical_context import MedicalContextRequest
from ..services.medical_context import (
    FALLBACK_ADVICE,
    PROCESSING_INFO,
    MedlinePlusClient,
    build_medical_context,
    get_context_client,
)
from ..utils.exceptions import LabInsightError
from ..utils.rate_limit import CONTEXT_LIMIT, limiter

router = APIRouter()


@router.post("/medical-context")
@limiter.limit(CONTEXT_LIMIT)
async def medical_context(
    request: Request,
    body: MedicalContextRequest,
    context_client: MedlinePlusClient = Depends(get_context_client),
):
    if not body.healthParameters:
        raise LabInsightError("Health parameters array required", {"fallbackAdvice": FALLBACK_ADVICE})
    combined = await build_medical_context(body.healthParameters, context_client)
    return {"success": True, "medicalContext": combined, "processingInfo": PROCESSING_INFO}
