from datetime import date

from labinsight.services.candidates import Strategy, make_candidate
from labinsight.services.merge import DEFAULT_PRIORITY, merge, parse_priority
from labinsight.services.validation import CONFIDENCE_EXACT, CONFIDENCE_FALLBACK, validate

TODAY = date(2025, 10, 1)


def _v(name, value, source, when=None):
    return validate(make_candidate(name, value, "", source, date=when))


def test_pattern_beats_llm():
    lists = {
        Strategy.LLM: [_v("LDL Cholesterol", "140", Strategy.LLM)],
        Strategy.PATTERN: [_v("LDL Cholesterol", "130", Strategy.PATTERN)],
    }
    out = merge(lists, today=TODAY)
    assert len(out) == 1
    assert out[0].value == "130"
    assert out[0].source is Strategy.PATTERN


def test_table_listed_first_in_top_tier():
    assert DEFAULT_PRIORITY[0] == (Strategy.TABLE, Strategy.PATTERN)
    lists = {
        Strategy.PATTERN: [_v("Glucose", "95", Strategy.PATTERN)],
        Strategy.TABLE: [_v("Glucose", "101", Strategy.TABLE)],
    }
    assert merge(lists, today=TODAY)[0].value == "101"


def test_fuzzy_only_fills_gaps():
    lists = {
        Strategy.PATTERN: [_v("Glucose", "95", Strategy.PATTERN)],
        Strategy.FUZZY: [_v("Glucose", "99", Strategy.FUZZY), _v("TSH", "2.2", Strategy.FUZZY)],
    }
    out = {p.parameter: p for p in merge(lists, today=TODAY)}
    assert out["Glucose"].value == "95"
    assert out["TSH"].source is Strategy.FUZZY


def test_one_entry_per_name_and_never_averaged():
    lists = {
        Strategy.TABLE: [_v("HbA1c", "6.8", Strategy.TABLE)],
        Strategy.PATTERN: [_v("HbA1c", "6.2", Strategy.PATTERN)],
        Strategy.LLM: [_v("HbA1c", "6.5", Strategy.LLM)],
    }
    out = merge(lists, today=TODAY)
    assert [p.value for p in out] == ["6.8"]


def test_merge_is_idempotent():
    lists = {
        Strategy.PATTERN: [_v("Glucose", "95", Strategy.PATTERN), _v("TSH", "2.2", Strategy.PATTERN)],
        Strategy.LLM: [_v("CRP", "1.2", Strategy.LLM)],
    }
    first = merge(lists, test_date="2025-09-09", today=TODAY)
    again = merge(lists, test_date="2025-09-09", today=TODAY)
    assert first == again
    assert [p.parameter for p in first] == ["Glucose", "TSH", "CRP"]


def test_dates_come_from_item_then_document():
    lists = {
        Strategy.LLM: [
            _v("CRP", "1.2", Strategy.LLM, when="2025-08-20"),
            _v("TSH", "2.0", Strategy.LLM),
        ],
    }
    out = {p.parameter: p for p in merge(lists, test_date="2025-09-09", today=TODAY)}
    assert out["CRP"].test_date == date(2025, 8, 20)
    assert out["TSH"].test_date == date(2025, 9, 9)
    assert out["TSH"].date_confidence == CONFIDENCE_EXACT


def test_missing_date_uses_today_with_fallback_confidence():
    out = merge({Strategy.PATTERN: [_v("Glucose", "95", Strategy.PATTERN)]}, today=TODAY)
    assert out[0].test_date == TODAY
    assert out[0].to_dict()["dateConfidence"] == CONFIDENCE_FALLBACK


def test_priority_from_environment(monkeypatch):
    monkeypatch.setenv("MERGE_PRIORITY", "llm,pattern")
    lists = {
        Strategy.PATTERN: [_v("Glucose", "95", Strategy.PATTERN)],
        Strategy.LLM: [_v("Glucose", "97", Strategy.LLM)],
    }
    assert merge(lists, today=TODAY)[0].value == "97"


def test_parse_priority_ignores_unknown_and_appends_missing():
    order = parse_priority("fuzzy, bogus ,llm")
    assert order[:2] == [Strategy.FUZZY, Strategy.LLM]
    assert set(order) == set(Strategy)
    assert len(order) == 4
