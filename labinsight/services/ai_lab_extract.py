"""LLM-backed candidate generator.

The model reply is untrusted text: the first balanced ``{...}`` span is
parsed as JSON and every entry is re-checked before it becomes a candidate.
Any failure yields no candidates.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from labinsight.services.candidates import CandidateParameter, Strategy, make_candidate
from labinsight.services.gemini import CompletionClient
from labinsight.services.parameter_catalog import CATALOG, category_for, resolve_parameter_name, unit_for

logger = logging.getLogger("labinsight")

LLM_MAX_TOKENS = 1000
LLM_TEMPERATURE = 0.0

_SCHEMA_EXAMPLE = (
    '{"healthParameters": [{"parameter": "Total Cholesterol", "value": "218", '
    '"unit": "mg/dL", "category": "Cardiovascular", "date": "2025-09-09"}]}'
)


def build_extraction_prompt(text: str) -> str:
    known = ", ".join(CATALOG)
    return (
        "You are extracting results from a medical lab report.\n"
        "Return ONLY the measured RESULT value for each test, never a reference range bound.\n"
        f"Known parameter names: {known}.\n"
        "Use numbers only for value (no units, no comparison signs). "
        "Omit any test you cannot read with certainty.\n"
        f"Respond with a single JSON object exactly in this shape:\n{_SCHEMA_EXAMPLE}\n\n"
        f"REPORT TEXT:\n{text}\n\nJSON only:"
    )


def find_json_object(reply: str) -> Optional[str]:
    """Return the first balanced ``{...}`` span, honouring JSON string quoting."""
    start = reply.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(reply)):
            ch = reply[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return reply[start:idx + 1]
        start = reply.find("{", start + 1)
    return None


def parse_llm_reply(reply: str) -> List[CandidateParameter]:
    span = find_json_object(reply or "")
    if span is None:
        return []
    try:
        data = json.loads(span)
    except ValueError:
        return []
    entries = data.get("healthParameters") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        return []

    found: List[CandidateParameter] = []
    seen = set()
    for entry in entries:
        candidate = _entry_to_candidate(entry)
        if candidate and candidate.parameter not in seen:
            seen.add(candidate.parameter)
            found.append(candidate)
    return found


def _entry_to_candidate(entry: Any) -> Optional[CandidateParameter]:
    if not isinstance(entry, dict):
        return None
    name = resolve_parameter_name(str(entry.get("parameter") or entry.get("name") or ""))
    if not name:
        return None
    unit = str(entry.get("unit") or "").strip() or unit_for(name)
    category = str(entry.get("category") or "").strip() or category_for(name)
    raw_date = entry.get("date")
    return make_candidate(
        name,
        entry.get("value"),
        unit,
        Strategy.LLM,
        date=str(raw_date).strip() if raw_date else None,
        category=category,
    )


class LLMGenerator:
    def __init__(self, client: Optional[CompletionClient]):
        self.client = client

    async def generate(self, text: str) -> List[CandidateParameter]:
        if self.client is None:
            return []
        try:
            reply = await self.client.complete(
                build_extraction_prompt(text), max_tokens=LLM_MAX_TOKENS, temperature=LLM_TEMPERATURE
            )
        except Exception as exc:
            logger.warning({"function": "llm_extract", "stage": "complete_failed", "error": str(exc)})
            return []
        candidates = parse_llm_reply(reply)
        logger.info({"function": "llm_extract", "reply_chars": len(reply or ""), "candidates": len(candidates)})
        return candidates
