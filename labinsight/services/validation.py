"""Plausible-range validation, status derivation and date normalization."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from labinsight.services.candidates import CandidateParameter, ValidatedParameter
from labinsight.services.parameter_catalog import ParameterSpec, get_spec
from labinsight.utils.exceptions import ValidationRangeError

logger = logging.getLogger("labinsight")

STATUS_NORMAL = "Normal"
STATUS_LOW = "Low"
STATUS_HIGH = "High"
STATUS_UNKNOWN = "Unknown"

CONFIDENCE_EXACT = "exact"
CONFIDENCE_MONTH = "month"
CONFIDENCE_FALLBACK = "fallback"

MAX_DATE_AGE_YEARS = 5
MONTH_ONLY_DAY = 15


def derive_status(spec: ParameterSpec, value: float, sex: Optional[str] = None) -> str:
    if not spec.has_cutoffs:
        return STATUS_UNKNOWN
    low = spec.low_cutoff(sex)
    if low is not None and value < low:
        return STATUS_LOW
    if spec.normal_high is not None and value > spec.normal_high:
        return STATUS_HIGH
    return STATUS_NORMAL


def check_range(candidate: CandidateParameter) -> ParameterSpec:
    """Return the catalog entry for ``candidate`` or raise ValidationRangeError."""
    spec = get_spec(candidate.parameter)
    if spec is None:
        raise ValidationRangeError(candidate.parameter, candidate.value)
    try:
        value = float(candidate.value)
    except (TypeError, ValueError):
        raise ValidationRangeError(spec.name, candidate.value, spec.plausible)
    if not spec.in_range(value):
        raise ValidationRangeError(spec.name, candidate.value, spec.plausible)
    return spec


def validate(candidate: CandidateParameter, sex: Optional[str] = None) -> Optional[ValidatedParameter]:
    """Attach status and reference range, or drop the candidate (never clamp)."""
    try:
        spec = check_range(candidate)
    except ValidationRangeError as exc:
        logger.debug({"function": "validate", "dropped": exc.details, "source": candidate.source.value})
        return None
    value = float(candidate.value)
    return ValidatedParameter(
        parameter=spec.name,
        value=candidate.value,
        numeric_value=value,
        unit=candidate.unit or spec.unit,
        status=derive_status(spec, value, sex),
        reference_range=spec.reference_range,
        category=spec.category,
        source=candidate.source,
        date=candidate.date,
    )


# ---- dates ----

_MONTH_NAME = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\.?"
)
_DATE_VALUE = (
    r"(?:\d{4}[-/.]\d{1,2}[-/.]\d{1,2}"
    r"|\d{1,2}[-/.]\d{1,2}[-/.](?:\d{4}|\d{2})"
    rf"|\d{{1,2}}(?:st|nd|rd|th)?\s+{_MONTH_NAME},?\s+\d{{4}}"
    rf"|{_MONTH_NAME}\s+(?:\d{{1,2}}(?:st|nd|rd|th)?,?\s+)?\d{{4}}"
    r"|\d{1,2}[-/]\d{4})"
)
_DATE_TOKEN_RE = re.compile(rf"\b{_DATE_VALUE}\b", re.IGNORECASE)

_LABELLED_DATE_RE = re.compile(
    r"\b(?:test\s+date|collection\s+date|date\s+collected|collected(?:\s+on)?|sample\s+date"
    r"|report(?:ed)?\s+date|reported(?:\s+on)?|date\s+of\s+test)"
    rf"\s*[:\-]?\s*({_DATE_VALUE})",
    re.IGNORECASE,
)
# "Date: ..." on its own, but not "Birth Date" / "Expiry Date"
_BARE_DATE_LABEL_RE = re.compile(
    r"(?<!birth\s)(?<!birth-)(?<!expiry\s)(?<!expiration\s)\bdate\s*[:\-]?\s*"
    rf"({_DATE_VALUE})",
    re.IGNORECASE,
)

# Two defaults that differ in every field; a field that comes back different
# between them was missing from the input.
_DEFAULT_A = datetime(2000, 1, MONTH_ONLY_DAY)
_DEFAULT_B = datetime(2004, 2, MONTH_ONLY_DAY + 1)


@dataclass(frozen=True)
class DateResolution:
    date: date
    confidence: str

    @property
    def iso(self) -> str:
        return self.date.isoformat()


def _parse_date(raw: str):
    """Return (date, confidence) or None. Ambiguous numeric input is month-first."""
    try:
        first = date_parser.parse(raw, dayfirst=False, default=_DEFAULT_A)
        second = date_parser.parse(raw, dayfirst=False, default=_DEFAULT_B)
    except (ValueError, OverflowError) as exc:
        logger.debug({"function": "parse_date", "raw": raw, "error": str(exc)})
        return None
    if first.year != second.year or first.month != second.month:
        return None
    if first.day != second.day:
        return first.date(), CONFIDENCE_MONTH
    return first.date(), CONFIDENCE_EXACT


def normalize_date(raw: Optional[str], today: Optional[date] = None) -> DateResolution:
    """Resolve a free-form date string to a calendar date.

    Month-year input resolves to the 15th. Future dates, dates more than five
    years old and unparseable input become ``today`` with confidence
    ``fallback``; the substitution is logged, never raised.
    """
    today = today or date.today()
    parsed = _parse_date(raw.strip()) if raw and raw.strip() else None
    if parsed is None:
        reason = "missing" if not raw else "unparseable"
    else:
        value, confidence = parsed
        if value > today:
            reason = "future"
        elif value < today - relativedelta(years=MAX_DATE_AGE_YEARS):
            reason = "too_old"
        else:
            return DateResolution(value, confidence)
    logger.info({"function": "DateNormalizationFallback", "raw": raw, "reason": reason, "substituted": today.isoformat()})
    return DateResolution(today, CONFIDENCE_FALLBACK)


def detect_test_date(text: str) -> Optional[str]:
    """Find the report's collection/test date string.

    Specific labels win over a bare "Date:" label, which wins over the first
    date-like token anywhere in the text.
    """
    for pattern in (_LABELLED_DATE_RE, _BARE_DATE_LABEL_RE):
        match = pattern.search(text or "")
        if match:
            return match.group(1).strip()
    match = _DATE_TOKEN_RE.search(text or "")
    return match.group(0).strip() if match else None
