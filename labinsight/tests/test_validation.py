import random
from datetime import date

import pytest

from labinsight.services.candidates import Strategy, make_candidate
from labinsight.services.parameter_catalog import CATALOG
from labinsight.services.validation import (
    CONFIDENCE_EXACT,
    CONFIDENCE_FALLBACK,
    CONFIDENCE_MONTH,
    detect_test_date,
    normalize_date,
    validate,
)

TODAY = date(2025, 10, 1)
_rng = random.Random(20250901)


def _cand(name, value, source=Strategy.PATTERN):
    return make_candidate(name, value, "", source)


def _inside(spec):
    lo, hi = spec.plausible
    return round(_rng.uniform(lo, hi), 1)


def _outside(spec):
    lo, hi = spec.plausible
    return round(hi + _rng.uniform(0.5, hi + 10), 1)


INSIDE_CASES = [(name, _inside(spec)) for name, spec in CATALOG.items() for _ in range(3)]
OUTSIDE_CASES = [(name, _outside(spec)) for name, spec in CATALOG.items()]


@pytest.mark.parametrize("name,value", INSIDE_CASES)
def test_values_inside_plausible_range_are_kept(name, value):
    spec = CATALOG[name]
    lo, hi = spec.plausible
    value = min(max(value, lo), hi)
    out = validate(_cand(name, value))
    assert out is not None
    assert out.parameter == name
    assert lo <= out.numeric_value <= hi
    assert out.status in ("Normal", "Low", "High", "Unknown")
    assert out.reference_range == spec.reference_range
    assert out.category == spec.category


@pytest.mark.parametrize("name,value", OUTSIDE_CASES)
def test_values_outside_plausible_range_are_dropped(name, value):
    assert validate(_cand(name, value)) is None


def test_unknown_parameter_is_dropped():
    assert validate(_cand("Unobtainium", "5")) is None


def test_bounds_are_inclusive():
    assert validate(_cand("Total Cholesterol", "100")) is not None
    assert validate(_cand("Total Cholesterol", "400")) is not None
    assert validate(_cand("Total Cholesterol", "99.9")) is None


@pytest.mark.parametrize(
    "name,value,sex,status",
    [
        ("Total Cholesterol", "230", None, "High"),
        ("Total Cholesterol", "200", None, "Normal"),
        ("HbA1c", "6.8", None, "High"),
        ("Glucose", "65", None, "Low"),
        ("Glucose", "90", None, "Normal"),
        ("HDL Cholesterol", "45", "female", "Low"),
        ("HDL Cholesterol", "45", "male", "Normal"),
        ("HDL Cholesterol", "45", None, "Normal"),
        ("HDL Cholesterol", "35", None, "Low"),
        ("Vitamin D", "18", None, "Low"),
    ],
)
def test_status_derivation(name, value, sex, status):
    assert validate(_cand(name, value), sex=sex).status == status


def test_alias_resolves_to_canonical_name():
    out = validate(_cand("LDL-C", "130"))
    assert out.parameter == "LDL Cholesterol"
    assert out.unit == "mg/dL"


@pytest.mark.parametrize(
    "raw,expected,confidence",
    [
        ("2025-03-04", date(2025, 3, 4), CONFIDENCE_EXACT),
        ("2025/03/04", date(2025, 3, 4), CONFIDENCE_EXACT),
        ("03/04/2025", date(2025, 3, 4), CONFIDENCE_EXACT),
        ("13/04/2025", date(2025, 4, 13), CONFIDENCE_EXACT),
        ("03/04/25", date(2025, 3, 4), CONFIDENCE_EXACT),
        ("9 Sep 2025", date(2025, 9, 9), CONFIDENCE_EXACT),
        ("September 9, 2025", date(2025, 9, 9), CONFIDENCE_EXACT),
        ("September 2025", date(2025, 9, 15), CONFIDENCE_MONTH),
        ("09/2025", date(2025, 9, 15), CONFIDENCE_MONTH),
    ],
)
def test_normalize_date_formats(raw, expected, confidence):
    resolved = normalize_date(raw, today=TODAY)
    assert resolved.date == expected
    assert resolved.confidence == confidence


@pytest.mark.parametrize("raw", [None, "", "not a date", "2026-01-01", "2015-01-01", "2025-02-30"])
def test_normalize_date_falls_back_to_today(raw):
    resolved = normalize_date(raw, today=TODAY)
    assert resolved.date == TODAY
    assert resolved.confidence == CONFIDENCE_FALLBACK
    assert resolved.iso == "2025-10-01"


def test_normalize_date_is_stable_on_its_own_output():
    first = normalize_date("September 2025", today=TODAY)
    assert normalize_date(first.iso, today=TODAY).date == first.date


def test_detect_test_date_prefers_labels():
    text = "Printed 2025-09-30\nCollection Date: 2025-08-01\nGlucose 90 mg/dL"
    assert detect_test_date(text) == "2025-08-01"


def test_detect_test_date_falls_back_to_first_date_token():
    assert detect_test_date("Lipid panel 08/14/2025 fasting") == "08/14/2025"
    assert detect_test_date("Glucose 90 mg/dL") is None


def test_catalog_lookups_default_for_unknown_names():
    from labinsight.services.parameter_catalog import category_for, reference_range_for, resolve_parameter_name

    assert resolve_parameter_name("Hemoglobin A1c") == "HbA1c"
    assert resolve_parameter_name("sgpt") == "ALT"
    assert resolve_parameter_name("Unobtainium") is None
    assert category_for("WBC") == "Hematology"
    assert category_for("Unobtainium") == "General"
    assert reference_range_for("AST") == "8-48 U/L"
    assert reference_range_for("Unobtainium") == "Check with healthcare provider"


@pytest.mark.parametrize(
    "raw,expected,confidence",
    [
        ("Mar 4th, 2025", date(2025, 3, 4), CONFIDENCE_EXACT),
        ("2025-03-04T08:30:00", date(2025, 3, 4), CONFIDENCE_EXACT),
        ("Aug. 2025", date(2025, 8, 15), CONFIDENCE_MONTH),
    ],
)
def test_normalize_date_accepts_common_report_forms(raw, expected, confidence):
    resolved = normalize_date(raw, today=TODAY)
    assert (resolved.date, resolved.confidence) == (expected, confidence)


@pytest.mark.parametrize("raw", ["March 15", "08:30", "2025"])
def test_normalize_date_needs_month_and_year(raw):
    assert normalize_date(raw, today=TODAY).confidence == CONFIDENCE_FALLBACK


def test_detect_test_date_skips_birth_date():
    text = "Patient: J. Doe\nBirth Date: 05/12/1980\nDate: 08/14/2025\nGlucose 90 mg/dL"
    assert detect_test_date(text) == "08/14/2025"


def test_detect_test_date_specific_label_beats_bare_date():
    text = "Date: 09/30/2025\nCollected on 08/14/2025\nGlucose 90 mg/dL"
    assert detect_test_date(text) == "08/14/2025"
