import asyncio
from datetime import date

import pytest

from labinsight.services import extraction_pipeline
from labinsight.services.candidates import Strategy
from labinsight.services.extraction_pipeline import classify_document, revalidate_parameters, run_extraction
from labinsight.utils.exceptions import EmptyInputError, NoParametersFoundError

TODAY = date(2025, 10, 1)
SCENARIO = "Total Cholesterol 230 mg/dL <200 mg/dL\nHbA1c 6.8% <5.7%"


def _run(**kwargs):
    kwargs.setdefault("today", TODAY)
    return asyncio.run(run_extraction(**kwargs))


def test_cholesterol_and_a1c_scenario():
    result = _run(text=SCENARIO)
    params = {p.parameter: p for p in result.parameters}
    assert set(params) == {"Total Cholesterol", "HbA1c"}
    assert params["Total Cholesterol"].value == "230"
    assert params["HbA1c"].value == "6.8"
    assert all(p.status == "High" for p in result.parameters)
    data = result.extracted_data()
    assert data["totalParametersFound"] == 2
    assert data["documentType"] == "Lab Results"
    assert data["testDate"] == TODAY.isoformat()


def test_empty_blob_fails_before_any_generator(monkeypatch):
    async def boom(*args, **kwargs):
        raise AssertionError("generators must not run")

    monkeypatch.setattr(extraction_pipeline, "generate_candidates", boom)
    with pytest.raises(EmptyInputError):
        _run(blob=b"")
    with pytest.raises(EmptyInputError):
        _run(text="   ")


def test_text_without_terms_reports_zero_counts():
    with pytest.raises(NoParametersFoundError) as info:
        _run(text="The quick brown fox jumps over the lazy dog")
    counts = info.value.details["strategyCounts"]
    assert counts == {"pattern": 0, "table": 0, "llm": 0, "fuzzy": 0}
    assert "quick brown fox" in info.value.details["extractedText"]


def test_implausible_value_is_dropped():
    result = _run(text="Total Cholesterol 550 mg/dL\nHbA1c 6.8%")
    assert [p.parameter for p in result.parameters] == ["HbA1c"]
    assert result.strategy_counts["pattern"] == 2
    assert result.validated_counts["pattern"] == 1


def test_llm_timeout_contributes_nothing(make_llm):
    slow = make_llm(reply='{"healthParameters": [{"parameter": "CRP", "value": "1.1"}]}', delay=0.5)
    result = _run(text=SCENARIO, llm_client=slow, llm_timeout=0.05)
    assert result.strategy_counts["llm"] == 0
    assert {p.parameter for p in result.parameters} == {"Total Cholesterol", "HbA1c"}


def test_llm_fills_parameters_regex_missed(make_llm):
    client = make_llm(reply='{"healthParameters": [{"parameter": "C-Reactive Protein", "value": "1.1", "unit": "mg/L"}]}')
    result = _run(text=SCENARIO, llm_client=client)
    params = {p.parameter: p for p in result.parameters}
    assert params["CRP"].source is Strategy.LLM
    assert params["Total Cholesterol"].source in (Strategy.TABLE, Strategy.PATTERN)


def test_failing_generator_does_not_abort(monkeypatch):
    def broken(text):
        raise RuntimeError("regex engine exploded")

    monkeypatch.setattr(extraction_pipeline, "generate_fuzzy_candidates", broken)
    result = _run(text=SCENARIO)
    assert result.strategy_counts["fuzzy"] == 0
    assert len(result.parameters) == 2


def test_labelled_test_date_is_used():
    result = _run(text="Collection Date: 2025-08-01\n" + SCENARIO)
    assert result.test_date == "2025-08-01"
    assert all(p.test_date == date(2025, 8, 1) for p in result.parameters)


def test_long_text_is_truncated(monkeypatch):
    monkeypatch.setattr(extraction_pipeline, "MAX_EXTRACT_CHARS", 60)
    result = _run(text=SCENARIO + "\n" + "filler words " * 20)
    assert result.extracted.truncated
    assert len(result.extracted.text) == 60
    assert result.notes


def test_classify_document():
    assert classify_document("LIPID PANEL results") == "Lipid Panel"
    assert classify_document("CBC with differential") == "Complete Blood Count"
    assert classify_document("misc") == "Lab Results"


def test_revalidate_parameters_drops_bad_rows():
    rows = [
        {"parameter": "LDL", "value": "130", "unit": "mg/dL"},
        {"parameter": "LDL Cholesterol", "value": "999"},
        {"parameter": "Glucose", "value": 92.0, "source": "llm", "date": "2025-09-01"},
        {"parameter": "Mystery", "value": "3"},
    ]
    out = {p.parameter: p for p in revalidate_parameters(rows, test_date="2025-09-09", today=TODAY)}
    assert set(out) == {"LDL Cholesterol", "Glucose"}
    assert out["LDL Cholesterol"].test_date == date(2025, 9, 9)
    assert out["Glucose"].value == "92"
    assert out["Glucose"].source is Strategy.LLM
    assert out["Glucose"].test_date == date(2025, 9, 1)


def test_glycated_hemoglobin_yields_one_record():
    result = _run(text="Glycated Hemoglobin 6.8 %\nFasting Glucose 110 mg/dL")
    params = {p.parameter: (p.value, p.status) for p in result.parameters}
    assert params == {"HbA1c": ("6.8", "High"), "Glucose": ("110", "High")}
