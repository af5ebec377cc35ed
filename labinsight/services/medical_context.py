"""Background reading for lab parameters from the MedlinePlus health-topics service.

Only the generic medical term ("cholesterol", "thyroid") leaves the process;
values, units and session data never do. When the service is unreachable the
static fallback text is returned instead.
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import httpx

from labinsight.services.parameter_catalog import resolve_parameter_name
from labinsight.utils.exceptions import ExternalServiceError

logger = logging.getLogger("labinsight")

MEDLINEPLUS_URL = (os.getenv("MEDLINEPLUS_URL") or "https://wsearch.nlm.nih.gov/ws/query").strip()
MEDLINEPLUS_TIMEOUT_SECONDS = float(os.getenv("MEDLINEPLUS_TIMEOUT_SECONDS", "10") or 10)
MAX_CONTEXT_PARAMETERS = 5
MAX_RESULTS = 3

SOURCE = "MedlinePlus/NIH"
FALLBACK_SOURCE = "Fallback Medical Knowledge"
FALLBACK_ADVICE = "Consult healthcare provider for medical interpretation"
PROCESSING_INFO = {
    "apiSource": "MedlinePlus Web Service",
    "privacyNote": "Only generic medical terms queried - no personal data transmitted",
    "queryMethod": "Anonymous health parameter lookup",
}

# Catalog name -> term MedlinePlus files its health topic under
CONTEXT_TERMS: Dict[str, str] = {
    "Total Cholesterol": "cholesterol",
    "LDL Cholesterol": "ldl cholesterol",
    "HDL Cholesterol": "hdl cholesterol",
    "Triglycerides": "triglycerides",
    "Glucose": "blood glucose",
    "HbA1c": "hemoglobin a1c",
    "Systolic Blood Pressure": "blood pressure",
    "Diastolic Blood Pressure": "blood pressure",
    "CRP": "c reactive protein",
    "Vitamin D": "vitamin d",
    "ALT": "liver function tests",
    "AST": "liver function tests",
    "Creatinine": "creatinine",
    "Hemoglobin": "hemoglobin",
    "WBC": "white blood cell count",
    "Platelets": "platelet tests",
    "TSH": "thyroid",
}

_EXTRA_TERMS = {
    "blood pressure": "blood pressure",
    "bp": "blood pressure",
    "blood pressure systolic": "blood pressure",
    "blood pressure diastolic": "blood pressure",
    "glucose fasting": "blood glucose",
    "free t4": "thyroid",
    "free t3": "thyroid",
    "testosterone total": "testosterone",
    "esr": "erythrocyte sedimentation rate",
}

_FALLBACK_INFO: Dict[str, Dict[str, str]] = {
    "cholesterol": {
        "normalRange": "Total cholesterol: Less than 200 mg/dL (desirable)",
        "description": "A waxy substance found in blood. High levels can increase heart disease risk.",
        "factors": "Diet, exercise, genetics, and medications can affect cholesterol levels.",
    },
    "blood glucose": {
        "normalRange": "Fasting glucose: 70-99 mg/dL (normal)",
        "description": "The amount of sugar in your blood. Important for diabetes monitoring.",
        "factors": "Diet, exercise, stress, and medications can affect blood glucose.",
    },
    "blood pressure": {
        "normalRange": "Less than 120/80 mmHg (normal)",
        "description": "The force of blood against artery walls. High BP increases cardiovascular risk.",
        "factors": "Diet, exercise, stress, weight, and medications affect blood pressure.",
    },
    "thyroid": {
        "normalRange": "TSH: 0.4-4.0 mIU/L (varies by lab)",
        "description": "Thyroid hormones regulate metabolism, energy, and many body functions.",
        "factors": "Age, medications, stress, and diet can affect thyroid function.",
    },
    "vitamin d": {
        "normalRange": "30-100 ng/mL (sufficient)",
        "description": "Essential for bone health, immune function, and overall wellness.",
        "factors": "Sun exposure, diet, supplements, and geographic location affect vitamin D levels.",
    },
}

_VALUE_SUFFIX_RE = re.compile(r"[:\-]\s*\d+.*$")
_PARENS_RE = re.compile(r"\(.*?\)")
_SEPARATORS_RE = re.compile(r"[,/\-]")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def fallback_info(term: str) -> Dict[str, str]:
    return _FALLBACK_INFO.get(term) or {
        "description": f"{term} is an important health parameter that should be interpreted by a healthcare professional.",
        "recommendation": "Consult your doctor or healthcare provider for personalized medical advice.",
    }


def medical_term(parameter: Union[str, Dict[str, Any]]) -> Optional[str]:
    """Generic search term for a reading ("Cholesterol: 240 mg/dL" -> "cholesterol")."""
    label = parameter if isinstance(parameter, str) else (parameter.get("parameter") or parameter.get("name") or "")
    cleaned = _VALUE_SUFFIX_RE.sub("", str(label).lower())
    cleaned = _SEPARATORS_RE.sub(" ", _PARENS_RE.sub("", cleaned))
    cleaned = " ".join(cleaned.split())
    if not cleaned:
        return None
    canonical = resolve_parameter_name(cleaned)
    if canonical in CONTEXT_TERMS:
        return CONTEXT_TERMS[canonical]
    return _EXTRA_TERMS.get(cleaned, cleaned)


def parse_search_result(payload: str, term: str) -> Dict[str, Any]:
    """Summarize the first document of an ``nlmSearchResult`` XML reply."""
    root = ET.fromstring(payload)
    documents = root.findall("./list/document")
    if not documents:
        return {
            "source": SOURCE,
            "term": term,
            "summary": f"Medical information about {term}",
            "generalInfo": fallback_info(term),
            "timestamp": _now(),
            "note": "No specific results found - using general information",
        }
    first = documents[0]
    fields = {c.get("name"): " ".join("".join(c.itertext()).split()) for c in first.findall("content")}
    return {
        "source": SOURCE,
        "term": term,
        "title": fields.get("title") or f"Information about {term}",
        "summary": fields.get("snippet") or fields.get("FullSummary") or f"Medical information about {term}",
        "url": first.get("url"),
        "generalInfo": fallback_info(term),
        "timestamp": _now(),
        "totalResults": len(documents),
    }


class MedlinePlusClient:
    def __init__(
        self,
        base_url: str = MEDLINEPLUS_URL,
        timeout_s: float = MEDLINEPLUS_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.timeout_s = timeout_s
        self.transport = transport

    async def search(self, term: str) -> Dict[str, Any]:
        params = {"db": "healthTopics", "term": term, "retmax": str(MAX_RESULTS), "rettype": "brief"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self.transport) as client:
                r = await client.get(
                    self.base_url,
                    params=params,
                    headers={"User-Agent": "LabInsight/0.2 (anonymous term lookup)"},
                )
                r.raise_for_status()
                return parse_search_result(r.text, term)
        except httpx.HTTPError as exc:
            raise ExternalServiceError("Medical context lookup failed", {"term": term, "reason": str(exc)}) from exc
        except ET.ParseError as exc:
            raise ExternalServiceError("Medical context reply was not valid XML", {"term": term}) from exc


def get_context_client() -> MedlinePlusClient:
    """FastAPI dependency for the outbound lookup client."""
    return MedlinePlusClient()


async def context_for_parameter(parameter: Union[str, Dict[str, Any]], client: MedlinePlusClient) -> Dict[str, Any]:
    term = medical_term(parameter)
    if not term:
        return {"success": False, "parameter": parameter, "error": "Could not extract medical term"}
    try:
        context = await client.search(term)
    except ExternalServiceError as exc:
        logger.warning({"function": "medical_context", "term": term, "error": exc.message})
        context = {
            "source": FALLBACK_SOURCE,
            "term": term,
            "summary": (
                f"{term} is an important health parameter. Consult your healthcare provider "
                "for interpretation of your specific values."
            ),
            "generalInfo": fallback_info(term),
            "timestamp": _now(),
            "note": "MedlinePlus API unavailable - using fallback information",
        }
    return {"success": True, "parameter": parameter, "medicalTerm": term, "context": context}


async def build_medical_context(parameters: List[Union[str, Dict[str, Any]]], client: MedlinePlusClient) -> Dict[str, Any]:
    """Look up the first few parameters concurrently and combine the results."""
    lookups = await asyncio.gather(
        *(context_for_parameter(p, client) for p in parameters[:MAX_CONTEXT_PARAMETERS])
    )
    knowledge = [item for item in lookups if item["success"]]
    logger.info({
        "function": "build_medical_context",
        "requested": len(parameters),
        "queried": len(lookups),
        "successful": len(knowledge),
    })
    return {
        "parameters": parameters,
        "medicalKnowledge": knowledge,
        "totalQueries": len(lookups),
        "successfulQueries": len(knowledge),
        "timestamp": _now(),
        "source": SOURCE,
    }
