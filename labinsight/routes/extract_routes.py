import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile

from ..services.extraction_pipeline import run_extraction
from ..services.gemini import CompletionClient, get_completion_client
from ..utils.rate_limit import EXTRACT_LIMIT, limiter

logger = logging.getLogger("labinsight")

router = APIRouter()

MAX_FILE_MB = int(os.getenv("MAX_FILE_MB", "10") or 10)
DEBUG_TEXT_PREVIEW = 500


@router.post("/extract")
@limiter.limit(EXTRACT_LIMIT)
async def extract(
    request: Request,
    pdf_file: Optional[UploadFile] = File(default=None, alias="pdfFile"),
    file: Optional[UploadFile] = File(default=None),
    text: Optional[str] = Form(default=None),
    sex: Optional[str] = Form(default=None),
    debug: bool = Form(default=False),
    llm_client: Optional[CompletionClient] = Depends(get_completion_client),
):
    """Extract health parameters from an uploaded report or pasted text.

    Nothing is stored; clients send the result to /api/documents to keep it.
    """
    upload = pdf_file or file
    blob = b""
    declared_type = ""
    filename = ""
    if upload is not None:
        # Read into memory; never write to disk
        blob = await upload.read()
        if len(blob) / (1024 * 1024) > MAX_FILE_MB:
            raise HTTPException(status_code=413, detail=f"File size exceeds the {MAX_FILE_MB}MB limit")
        declared_type = (upload.content_type or "").lower()
        filename = upload.filename or ""

    result = await run_extraction(
        blob=blob or None,
        text=text,
        declared_type=declared_type,
        filename=filename,
        llm_client=llm_client,
        sex=sex,
    )

    debug_info = {
        **result.extracted.diagnostics(),
        "textLength": len(result.extracted.text),
        "strategyCounts": result.strategy_counts,
        "validatedCounts": result.validated_counts,
        "processingTimeMs": result.elapsed_ms,
        "notes": result.notes,
    }
    if debug:
        debug_info["extractedText"] = result.extracted.text
    else:
        debug_info["textPreview"] = result.extracted.text[:DEBUG_TEXT_PREVIEW]

    return {
        "success": True,
        "extractedData": result.extracted_data(),
        "debugInfo": debug_info,
    }
