"""End-to-end lab report parameter extraction.

acquisition -> generators (concurrent) -> validation -> merge. Nothing is
persisted here; callers store the result if they want to.
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from labinsight.services.ai_lab_extract import LLMGenerator
from labinsight.services.candidate_generators import (
    TableStructure,
    analyze_table_structure,
    generate_fuzzy_candidates,
    generate_pattern_candidates,
    generate_table_candidates,
)
from labinsight.services.candidates import (
    CandidateParameter,
    CanonicalParameter,
    Strategy,
    ValidatedParameter,
    make_candidate,
)
from labinsight.services.gemini import CompletionClient
from labinsight.services.merge import merge
from labinsight.services.text_acquisition import ExtractedText, acquire_text, normalize_plain_text
from labinsight.services.validation import detect_test_date, normalize_date, validate
from labinsight.utils.exceptions import NoParametersFoundError

logger = logging.getLogger("labinsight")

MAX_EXTRACT_CHARS = int(os.getenv("MAX_EXTRACT_CHARS", "20000") or 20000)
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "8") or 8)

DEFAULT_DOCUMENT_TYPE = "Lab Results"
_DOCUMENT_TYPES = (
    ("lipid panel", "Lipid Panel"),
    ("lipid profile", "Lipid Panel"),
    ("complete blood count", "Complete Blood Count"),
    ("cbc", "Complete Blood Count"),
    ("comprehensive metabolic panel", "Metabolic Panel"),
    ("basic metabolic panel", "Metabolic Panel"),
    ("liver function", "Liver Function Panel"),
    ("thyroid", "Thyroid Panel"),
)


@dataclass
class ExtractionResult:
    parameters: List[CanonicalParameter]
    document_type: str
    test_date: str
    table_structure: TableStructure
    strategy_counts: Dict[str, int]
    validated_counts: Dict[str, int]
    extracted: ExtractedText
    elapsed_ms: float = 0.0
    notes: List[str] = field(default_factory=list)

    def extracted_data(self) -> Dict[str, Any]:
        return {
            "healthParameters": [p.to_dict() for p in self.parameters],
            "documentType": self.document_type,
            "testDate": self.test_date,
            "totalParametersFound": len(self.parameters),
            "tableStructure": self.table_structure.to_dict(),
        }


def classify_document(text: str) -> str:
    lower = text.lower()
    for keyword, label in _DOCUMENT_TYPES:
        if keyword in lower:
            return label
    return DEFAULT_DOCUMENT_TYPE


async def _run_sync(strategy: Strategy, fn: Callable[[str], List[CandidateParameter]], text: str) -> List[CandidateParameter]:
    try:
        return await asyncio.to_thread(fn, text)
    except Exception as exc:
        logger.warning({"function": "run_generator", "strategy": strategy.value, "error": str(exc)})
        return []


async def _run_llm(generator: LLMGenerator, text: str, timeout_s: float) -> List[CandidateParameter]:
    try:
        return await asyncio.wait_for(generator.generate(text), timeout=timeout_s)
    except asyncio.TimeoutError:
        logger.warning({"function": "run_generator", "strategy": Strategy.LLM.value, "error": "timeout", "timeout_s": timeout_s})
        return []
    except Exception as exc:
        logger.warning({"function": "run_generator", "strategy": Strategy.LLM.value, "error": str(exc)})
        return []


async def generate_candidates(
    text: str,
    llm_client: Optional[CompletionClient] = None,
    llm_timeout: Optional[float] = None,
    structure: Optional[TableStructure] = None,
) -> Dict[Strategy, List[CandidateParameter]]:
    """Run every generator over ``text`` concurrently; a failing one contributes nothing."""
    structure = structure or analyze_table_structure(text)
    pattern, table, fuzzy, llm = await asyncio.gather(
        _run_sync(Strategy.PATTERN, generate_pattern_candidates, text),
        _run_sync(Strategy.TABLE, lambda t: generate_table_candidates(t, structure), text),
        _run_sync(Strategy.FUZZY, generate_fuzzy_candidates, text),
        _run_llm(LLMGenerator(llm_client), text, LLM_TIMEOUT_SECONDS if llm_timeout is None else llm_timeout),
    )
    return {
        Strategy.PATTERN: pattern,
        Strategy.TABLE: table,
        Strategy.LLM: llm,
        Strategy.FUZZY: fuzzy,
    }


def validate_all(
    candidates: Dict[Strategy, List[CandidateParameter]], sex: Optional[str] = None
) -> Dict[Strategy, List[ValidatedParameter]]:
    validated: Dict[Strategy, List[ValidatedParameter]] = {}
    for strategy, items in candidates.items():
        validated[strategy] = [v for v in (validate(c, sex) for c in items) if v is not None]
    return validated


async def run_extraction(
    blob: Optional[bytes] = None,
    text: Optional[str] = None,
    declared_type: str = "",
    filename: str = "",
    llm_client: Optional[CompletionClient] = None,
    sex: Optional[str] = None,
    llm_timeout: Optional[float] = None,
    today: Optional[date] = None,
) -> ExtractionResult:
    """Extract canonical parameters from an uploaded blob or pasted text.

    Raises EmptyInputError / InsufficientTextError from acquisition and
    NoParametersFoundError when no generator yields a usable reading.
    """
    started = time.perf_counter()
    if blob:
        extracted = acquire_text(blob, declared_type, filename)
    elif text is not None and text.strip():
        extracted = normalize_plain_text(text)
    else:
        # Same error for an empty upload and an empty text field
        extracted = acquire_text(blob or b"", declared_type, filename)

    extracted = extracted.truncate(MAX_EXTRACT_CHARS)
    body = extracted.text

    structure = analyze_table_structure(body)
    candidates = await generate_candidates(body, llm_client, llm_timeout, structure)
    counts = {strategy.value: len(items) for strategy, items in candidates.items()}

    validated = validate_all(candidates, sex)
    raw_date = detect_test_date(body)
    parameters = merge(validated, test_date=raw_date, today=today)

    if not parameters:
        logger.info({"function": "run_extraction", "stage": "no_parameters", "strategy_counts": counts})
        raise NoParametersFoundError(counts, body, extracted.methods_used)

    result = ExtractionResult(
        parameters=parameters,
        document_type=classify_document(body),
        test_date=normalize_date(raw_date, today=today).iso,
        table_structure=structure,
        strategy_counts=counts,
        validated_counts={s.value: len(items) for s, items in validated.items()},
        extracted=extracted,
        elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
    )
    if extracted.truncated:
        result.notes.append(f"text truncated to {MAX_EXTRACT_CHARS} characters")
    logger.info({
        "function": "run_extraction",
        "source": extracted.source,
        "chars": len(body),
        "strategy_counts": counts,
        "parameters": len(parameters),
        "elapsed_ms": result.elapsed_ms,
    })
    return result


def revalidate_parameters(
    items: List[Dict[str, Any]],
    test_date: Optional[str] = None,
    sex: Optional[str] = None,
    today: Optional[date] = None,
) -> List[CanonicalParameter]:
    """Canonicalise client-supplied readings before they are stored.

    Each item goes through the same validation and merge as extracted
    candidates, so out-of-range or unknown parameters are dropped here too.
    """
    by_strategy: Dict[Strategy, List[ValidatedParameter]] = {}
    for item in items:
        try:
            source = Strategy(str(item.get("source") or Strategy.PATTERN.value).lower())
        except ValueError:
            source = Strategy.PATTERN
        candidate = make_candidate(
            str(item.get("parameter") or ""),
            item.get("value"),
            str(item.get("unit") or ""),
            source,
            date=item.get("date") or None,
        )
        checked = validate(candidate, sex) if candidate is not None else None
        if checked is None:
            logger.info({"function": "revalidate_parameters", "dropped": item.get("parameter")})
            continue
        by_strategy.setdefault(source, []).append(checked)
    return merge(by_strategy, test_date=test_date, today=today)
