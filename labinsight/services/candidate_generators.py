"""Regex-driven candidate generators: pattern, table-aware and fuzzy proximity.

Each generator is a plain function ``generate(text) -> List[CandidateParameter]``
over immutable text. They share nothing but the static parameter catalog, so
the pipeline can run them concurrently.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Pattern

from labinsight.services.candidates import CandidateParameter, Strategy, make_candidate
from labinsight.services.parameter_catalog import (
    BP_PAIR_PATTERN,
    CATALOG,
    DIASTOLIC,
    SYSTOLIC,
    ParameterSpec,
)

Generator = Callable[[str], List[CandidateParameter]]

FUZZY_WINDOW = 20

TABLE_INDICATORS = (
    "test",
    "result",
    "reference range",
    "parameter",
    "value",
    "normal range",
    "cholesterol",
    "hba1c",
    "creatinine",
)
MIN_TABLE_ROWS = 3

_NUMBER_TOKEN_RE = re.compile(r"(?<![A-Za-z\d.])\d+(?:\.\d+)?(?!\d)")
_ANY_PARAMETER_RE = re.compile("|".join(f"(?:{spec.name_pattern})" for spec in CATALOG.values()), re.IGNORECASE)
_DIGIT_RE = re.compile(r"\d")


@dataclass(frozen=True)
class TableStructure:
    is_table: bool = False
    has_headers: bool = False
    column_pattern: Optional[str] = None
    row_count: int = 0
    confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isTable": self.is_table,
            "hasHeaders": self.has_headers,
            "columnPattern": self.column_pattern,
            "rowCount": self.row_count,
            "confidence": self.confidence,
        }


def analyze_table_structure(text: str) -> TableStructure:
    """Guess whether ``text`` is a test/result/reference table."""
    lower = text.lower()
    confidence = sum(1 for ind in TABLE_INDICATORS if ind in lower) / len(TABLE_INDICATORS)

    has_headers = "test" in lower and "result" in lower and "reference" in lower
    column_pattern = "test-result-reference" if has_headers else None

    rows = [
        line for line in text.splitlines()
        if line.strip() and _ANY_PARAMETER_RE.search(line) and _DIGIT_RE.search(line)
    ]
    is_table = has_headers
    if len(rows) >= MIN_TABLE_ROWS:
        is_table = True
        confidence = min(1.0, confidence + 0.3)
        column_pattern = column_pattern or "name-value-rows"

    return TableStructure(
        is_table=is_table,
        has_headers=has_headers,
        column_pattern=column_pattern,
        row_count=len(rows),
        confidence=round(confidence, 2),
    )


def _first_match(patterns: List[Pattern], text: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def _scan_catalog(text: str, source: Strategy, use_table_patterns: bool) -> List[CandidateParameter]:
    found: List[CandidateParameter] = []
    bp_pair = None
    for spec in CATALOG.values():
        patterns = spec.table_patterns if use_table_patterns else spec.patterns
        raw = _first_match(patterns, text)
        if raw is None and spec.name in (SYSTOLIC, DIASTOLIC):
            bp_pair = bp_pair or BP_PAIR_PATTERN.search(text)
            if bp_pair:
                raw = bp_pair.group(1) if spec.name == SYSTOLIC else bp_pair.group(2)
        if raw is None:
            continue
        candidate = make_candidate(spec.name, raw, spec.unit, source, category=spec.category)
        if candidate:
            found.append(candidate)
    return found


def generate_pattern_candidates(text: str) -> List[CandidateParameter]:
    """First match per parameter from the curated plain-text expressions.

    No range check happens here; validation drops implausible values.
    """
    return _scan_catalog(text, Strategy.PATTERN, use_table_patterns=False)


def generate_table_candidates(text: str, structure: Optional[TableStructure] = None) -> List[CandidateParameter]:
    structure = structure or analyze_table_structure(text)
    return _scan_catalog(text, Strategy.TABLE, use_table_patterns=structure.is_table)


def _term_regex(term: str) -> Pattern:
    body = r"\s+".join(re.escape(part) for part in term.split())
    return re.compile(rf"(?<![A-Za-z0-9]){body}(?![A-Za-z0-9])", re.IGNORECASE)


_FUZZY_TERMS: Dict[str, List[Pattern]] = {
    spec.name: [_term_regex(term) for term in spec.fuzzy_terms] for spec in CATALOG.values()
}
_FUZZY_EXCLUDE: Dict[str, Pattern] = {
    spec.name: re.compile(spec.fuzzy_exclude, re.IGNORECASE) for spec in CATALOG.values() if spec.fuzzy_exclude
}


def _excluded(spec: ParameterSpec, text: str, match) -> bool:
    exclude = _FUZZY_EXCLUDE.get(spec.name)
    if exclude is None:
        return False
    window = exclude.finditer(text, max(0, match.start() - 40), match.end() + 10)
    return any(m.start() <= match.start() and match.end() <= m.end() for m in window)


def _token_near(text: str, start: int, end: int) -> Optional[str]:
    """First number after the term within the window, else the nearest one before it."""
    after = _NUMBER_TOKEN_RE.search(text, end)
    if after and after.start() < end + FUZZY_WINDOW:
        return after.group(0)
    before = list(_NUMBER_TOKEN_RE.finditer(text, max(0, start - FUZZY_WINDOW), start))
    return before[-1].group(0) if before else None


def _fuzzy_value(spec: ParameterSpec, text: str) -> Optional[str]:
    for term_re in _FUZZY_TERMS.get(spec.name, []):
        for match in term_re.finditer(text):
            if _excluded(spec, text, match):
                continue
            token = _token_near(text, match.start(), match.end())
            if token is not None and spec.in_range(float(token)):
                return token
            break
    return None


def generate_fuzzy_candidates(text: str) -> List[CandidateParameter]:
    found: List[CandidateParameter] = []
    for spec in CATALOG.values():
        token = _fuzzy_value(spec, text)
        if token is None:
            continue
        candidate = make_candidate(spec.name, token, spec.unit, Strategy.FUZZY, category=spec.category)
        if candidate:
            found.append(candidate)
    return found
