from labinsight.services.candidate_generators import (
    analyze_table_structure,
    generate_fuzzy_candidates,
    generate_pattern_candidates,
    generate_table_candidates,
)
from labinsight.services.candidates import Strategy, clean_numeric, make_candidate


TABLE_TEXT = """Test               Result      Reference Range
Total Cholesterol  245 mg/dL   <200
LDL Cholesterol    160 mg/dL   <100
HDL Cholesterol    38 mg/dL    >40
"""


def _values(candidates):
    return {c.parameter: c.value for c in candidates}


def test_pattern_generator_reads_labelled_values():
    text = "Glucose: 95 mg/dL\nHDL Cholesterol 38 mg/dL\nTSH 2.1 mIU/L"
    found = generate_pattern_candidates(text)
    assert _values(found) == {"Glucose": "95", "HDL Cholesterol": "38", "TSH": "2.1"}
    assert all(c.source is Strategy.PATTERN for c in found)


def test_pattern_generator_splits_blood_pressure_pair():
    found = _values(generate_pattern_candidates("Blood Pressure: 128/82 mmHg"))
    assert found["Systolic Blood Pressure"] == "128"
    assert found["Diastolic Blood Pressure"] == "82"


def test_hdl_line_is_not_read_as_total_cholesterol():
    found = _values(generate_pattern_candidates("HDL Cholesterol 38 mg/dL"))
    assert "Total Cholesterol" not in found


def test_table_structure_detection():
    structure = analyze_table_structure(TABLE_TEXT)
    assert structure.is_table
    assert structure.has_headers
    assert structure.column_pattern == "test-result-reference"
    assert structure.row_count == 3
    assert 0 < structure.confidence <= 1

    prose = analyze_table_structure("Patient feels well today.")
    assert not prose.is_table
    assert prose.to_dict()["isTable"] is False


def test_table_generator_takes_result_not_reference_bound():
    found = generate_table_candidates(TABLE_TEXT)
    assert _values(found) == {
        "Total Cholesterol": "245",
        "LDL Cholesterol": "160",
        "HDL Cholesterol": "38",
    }
    assert all(c.source is Strategy.TABLE for c in found)


def test_table_generator_falls_back_to_plain_patterns():
    found = generate_table_candidates("Glucose 101 mg/dL")
    assert _values(found) == {"Glucose": "101"}
    assert found[0].source is Strategy.TABLE


def test_fuzzy_prefers_token_after_term():
    found = _values(generate_fuzzy_candidates("cholesterol total was measured at 187 today"))
    assert found["Total Cholesterol"] == "187"


def test_fuzzy_uses_token_before_term_when_none_after():
    found = _values(generate_fuzzy_candidates("reading 187 total cholesterol"))
    assert found["Total Cholesterol"] == "187"


def test_fuzzy_rejects_out_of_range_values():
    assert "HDL Cholesterol" not in _values(generate_fuzzy_candidates("hdl 500"))


def test_generators_return_nothing_for_unrelated_text():
    text = "The quick brown fox jumps over the lazy dog"
    assert generate_pattern_candidates(text) == []
    assert generate_table_candidates(text) == []
    assert generate_fuzzy_candidates(text) == []


def test_clean_numeric():
    assert clean_numeric("6.80") == "6.8"
    assert clean_numeric("1,250") == "1250"
    assert clean_numeric(" <5.7") == "5.7"
    assert clean_numeric(95) == "95"
    assert clean_numeric("high") is None
    assert clean_numeric("1e5") is None
    assert clean_numeric(-3) is None
    assert clean_numeric(True) is None


def test_make_candidate_refuses_non_numeric():
    assert make_candidate("Glucose", "n/a", "mg/dL", Strategy.PATTERN) is None
    cand = make_candidate("Glucose", "95.0", "mg/dL", Strategy.PATTERN)
    assert cand.value == "95"


def test_glycated_hemoglobin_is_not_read_as_hemoglobin():
    text = "Glycated Hemoglobin 6.8 %\nGlycosylated Haemoglobin: 6.9 %\nFasting Glucose 110 mg/dL"
    for generate in (generate_pattern_candidates, generate_table_candidates, generate_fuzzy_candidates):
        assert "Hemoglobin" not in _values(generate(text)), generate.__name__
    assert _values(generate_pattern_candidates(text))["HbA1c"] == "6.8"


def test_hemoglobin_still_found_beside_glycated_hemoglobin():
    text = "Glycated Hemoglobin 6.8 %\nHemoglobin 14.2 g/dL"
    assert _values(generate_pattern_candidates(text))["Hemoglobin"] == "14.2"
    assert _values(generate_fuzzy_candidates(text))["Hemoglobin"] == "14.2"
