from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth.deps import get_query_session, require_session
from ..db.session import get_db
from ..models.session import AnonymousSession
from ..schemas.documents import DocumentsRequest
from ..services import session_store, trends
from ..services.extraction_pipeline import DEFAULT_DOCUMENT_TYPE, revalidate_parameters
from ..services.gemini import CompletionClient, get_completion_client
from ..services.validation import normalize_date

router = APIRouter()


def _store(db: Session, session: AnonymousSession, body: DocumentsRequest):
    if not body.documentName or not body.healthParameters:
        raise HTTPException(status_code=400, detail="Document name and health parameters required")
    test_date = normalize_date(body.testDate)
    parameters = revalidate_parameters(
        [p.model_dump() for p in body.healthParameters], test_date=body.testDate, sex=body.sex
    )
    if not parameters:
        raise HTTPException(status_code=400, detail="None of the supplied parameters passed validation")
    document = session_store.persist_document(
        db,
        session,
        document_name=body.documentName,
        parameters=parameters,
        document_type=body.documentType or DEFAULT_DOCUMENT_TYPE,
        test_date=test_date.date,
        analysis=body.analysis,
        raw_payload=[p.model_dump() for p in body.healthParameters],
    )
    return {
        "success": True,
        "documentId": document.id,
        "parametersStored": len(parameters),
        "parametersRejected": len(body.healthParameters) - len(parameters),
        "message": "Document and health parameters stored successfully",
    }


def _delete(db: Session, session: AnonymousSession, body: DocumentsRequest):
    if not body.documentId:
        raise HTTPException(status_code=400, detail="Document ID required")
    if not session_store.delete_document(db, session, body.documentId, hard=body.hard):
        raise HTTPException(status_code=404, detail="Document not found")
    return {"success": True, "message": "Document deleted successfully"}


@router.post("/documents")
async def documents(
    body: DocumentsRequest,
    db: Session = Depends(get_db),
    llm_client: Optional[CompletionClient] = Depends(get_completion_client),
):
    session = require_session(db, body.sessionToken)
    if body.action == "store":
        return _store(db, session, body)
    if body.action == "list":
        docs = session_store.list_documents(db, session)
        return {"success": True, "documents": docs, "totalDocuments": len(docs)}
    if body.action == "delete":
        return _delete(db, session, body)
    result = await trends.analyze_trends(
        db, session, parameters=body.parameters, time_range=body.timeRange, llm_client=llm_client, today=date.today()
    )
    return {"success": True, **result}


@router.get("/documents")
def get_documents(
    db: Session = Depends(get_db),
    session: AnonymousSession = Depends(get_query_session),
):
    docs = session_store.list_documents(db, session)
    return {"success": True, "documents": docs, "totalDocuments": len(docs)}
