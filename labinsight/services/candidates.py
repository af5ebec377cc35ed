"""Records passed between the extraction stages."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional

_NUMERIC_RE = re.compile(r"^\d+(?:\.\d+)?$")


class Strategy(str, Enum):
    PATTERN = "pattern"
    TABLE = "table"
    LLM = "llm"
    FUZZY = "fuzzy"


@dataclass(frozen=True)
class CandidateParameter:
    """One unvalidated reading emitted by a single generator."""

    parameter: str
    value: str
    unit: str
    source: Strategy
    date: Optional[str] = None
    category: Optional[str] = None


@dataclass(frozen=True)
class ValidatedParameter:
    parameter: str
    value: str
    numeric_value: float
    unit: str
    status: str
    reference_range: str
    category: str
    source: Strategy
    date: Optional[str] = None


@dataclass(frozen=True)
class CanonicalParameter:
    parameter: str
    value: str
    numeric_value: float
    unit: str
    status: str
    reference_range: str
    category: str
    source: Strategy
    test_date: date
    date_confidence: str = field(default="exact")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "parameter": self.parameter,
            "value": self.value,
            "unit": self.unit,
            "referenceRange": self.reference_range,
            "status": self.status,
            "date": self.test_date.isoformat(),
            "dateConfidence": self.date_confidence,
            "source": self.source.value,
        }


def is_numeric_string(value: Any) -> bool:
    return isinstance(value, str) and bool(_NUMERIC_RE.match(value))


def clean_numeric(raw: Any) -> Optional[str]:
    """Coerce ``raw`` to a plain decimal string ("6.80" -> "6.8", "1,250" -> "1250")."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        if raw != raw or raw < 0:
            return None
        text = repr(float(raw))
    else:
        text = str(raw).strip().replace(",", "")
        match = re.search(r"\d+(?:\.\d+)?", text)
        if not match or text[: match.start()].strip() not in ("", "<", ">", "~", "="):
            return None
        if re.match(r"[eE][+-]?\d", text[match.end():]):
            return None
        text = match.group(0)
    if "e" in text.lower() or not _NUMERIC_RE.match(text):
        return None
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def make_candidate(
    parameter: str,
    raw_value: Any,
    unit: str,
    source: Strategy,
    date: Optional[str] = None,
    category: Optional[str] = None,
) -> Optional[CandidateParameter]:
    """Build a candidate, or None when ``raw_value`` is not a clean number."""
    value = clean_numeric(raw_value)
    if value is None:
        return None
    return CandidateParameter(parameter=parameter, value=value, unit=unit, source=source, date=date, category=category)
