import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml
from sqlalchemy.orm import Session

from labinsight.models.risk_assessment import RiskAssessmentRecord
from labinsight.models.session import AnonymousSession
from labinsight.services.gemini import CompletionClient
from labinsight.services.parameter_catalog import DIASTOLIC, SYSTOLIC, resolve_parameter_name
from labinsight.services.session_store import parameter_history
from labinsight.services.trends import TREND_DECREASING, TREND_INCREASING, calculate_trend

logger = logging.getLogger("labinsight")

CONFIG_PATH = Path(__file__).parent.parent / "config" / "risk_rules.yaml"

BLOOD_PRESSURE = "Blood Pressure"
_BP_NAMES = {"blood pressure", "bp", "b.p."}
_BP_VALUE_RE = re.compile(r"^\s*(\d{2,3}(?:\.\d+)?)\s*/\s*(\d{2,3}(?:\.\d+)?)")

LEVEL_UNKNOWN = "unknown"
INSIGHTS_FALLBACK = "Risk assessment complete. Consult healthcare provider for professional interpretation."
HISTORY_LIMIT = 500


def load_rules():
    with open(CONFIG_PATH, "r") as f:
        return yaml.safe_load(f)


RULES = load_rules()


def as_float(val) -> Optional[float]:
    try:
        if isinstance(val, str):
            val = val.strip()
        return float(val)
    except (TypeError, ValueError):
        return None


def _threshold(raw, sex: Optional[str]) -> float:
    if isinstance(raw, dict):
        key = (sex or "").strip().lower()
        return float(raw.get(key, raw["default"]))
    return float(raw)


def _band_matches(band: Dict[str, Any], value: float, sex: Optional[str]) -> bool:
    if "below" in band:
        return value < _threshold(band["below"], sex)
    if "at_least" in band:
        return value >= _threshold(band["at_least"], sex)
    return True


def _finding(parameter: str, value: str, unit: str, category: str, band: Dict[str, Any], normal_range: str) -> Dict[str, Any]:
    return {
        "parameter": parameter,
        "value": value,
        "unit": unit,
        "category": category,
        "riskLevel": band["level"],
        "riskScore": band["score"],
        "message": band["message"],
        "normalRange": normal_range,
    }


def assess_parameter(name: str, value, unit: str = "", sex: Optional[str] = None, rules=None) -> Dict[str, Any]:
    """Score one reading against its bands. Unknown names and unreadable values score 0."""
    rules = rules or RULES
    canonical = resolve_parameter_name(name) or name
    entry = rules["parameters"].get(canonical)
    number = as_float(value)
    if entry is None or number is None:
        return {
            "parameter": canonical,
            "value": str(value),
            "unit": unit or "",
            "category": entry["category"] if entry else "general",
            "riskLevel": LEVEL_UNKNOWN,
            "riskScore": 0,
            "message": "Parameter not recognized for risk scoring",
            "normalRange": entry["normal_range"] if entry else "",
        }
    for band in entry["bands"]:
        if _band_matches(band, number, sex):
            return _finding(canonical, str(value), unit or "", entry["category"], band, entry["normal_range"])
    raise ValueError(f"no catch-all band for {canonical}")


def assess_blood_pressure(systolic: float, diastolic: float, rules=None) -> Dict[str, Any]:
    rules = rules or RULES
    entry = rules["blood_pressure"]
    for band in entry["bands"]:
        sys_ok = "systolic_below" not in band or systolic < band["systolic_below"]
        dia_ok = "diastolic_below" not in band or diastolic < band["diastolic_below"]
        if (sys_ok or dia_ok) if band.get("either") else (sys_ok and dia_ok):
            return _finding(
                BLOOD_PRESSURE,
                f"{systolic:g}/{diastolic:g}",
                "mmHg",
                entry["category"],
                band,
                entry["normal_range"],
            )
    raise ValueError("no catch-all band for blood pressure")


def _split_blood_pressure(parameters: Sequence[Dict[str, Any]]):
    """Separate BP readings (combined "s/d" or a systolic+diastolic pair) from the rest."""
    others: List[Dict[str, Any]] = []
    pair: Dict[str, float] = {}
    combined: List[tuple] = []
    for item in parameters:
        name = str(item.get("parameter") or "").strip()
        if name.lower() in _BP_NAMES:
            match = _BP_VALUE_RE.match(str(item.get("value") or ""))
            if match:
                combined.append((float(match.group(1)), float(match.group(2))))
                continue
        canonical = resolve_parameter_name(name)
        if canonical in (SYSTOLIC, DIASTOLIC):
            number = as_float(item.get("value"))
            if number is not None:
                pair[canonical] = number
                continue
        others.append(item)
    if not combined and SYSTOLIC in pair and DIASTOLIC in pair:
        combined.append((pair[SYSTOLIC], pair[DIASTOLIC]))
    return combined, others


def score_parameters(parameters: Sequence[Dict[str, Any]], sex: Optional[str] = None, rules=None) -> Dict[str, Any]:
    """Per-category scores, overall score/level and the individual findings.

    Category score is min(100, sum / parameter_count * scale); the overall
    score is the rounded mean of the core categories.
    """
    rules = rules or RULES
    combined, others = _split_blood_pressure(parameters)
    findings = [assess_blood_pressure(s, d, rules) for s, d in combined]
    findings += [
        assess_parameter(str(item.get("parameter") or ""), item.get("value"), item.get("unit") or "", sex, rules)
        for item in others
    ]

    parameter_count = max(len(parameters), 1)
    sums = {category: 0 for category in rules["reported_categories"]}
    for finding in findings:
        if finding["category"] in sums:
            sums[finding["category"]] += finding["riskScore"]
    scale = rules["score_scale"]
    categories = {category: min(100, round(total / parameter_count * scale)) for category, total in sums.items()}

    core = rules["core_categories"]
    overall = round(sum(categories[c] for c in core) / len(core))
    return {
        "overallScore": overall,
        "overallLevel": risk_level(overall, rules),
        "categoryScores": categories,
        "findings": findings,
        "riskFactors": [f for f in findings if f["riskLevel"] in ("high", "moderate")],
        "protectiveFactors": [f for f in findings if f["riskLevel"] == "optimal"],
    }


def risk_level(score: float, rules=None) -> str:
    rules = rules or RULES
    for band in rules["levels"]:
        if score <= band["max"]:
            return band["level"]
    return rules["top_level"]


def compare_with_history(findings: Sequence[Dict[str, Any]], history, rules=None) -> Dict[str, Any]:
    """Classify each current reading against its latest stored one."""
    rules = rules or RULES
    latest: Dict[str, float] = {}
    for row in history:
        if row.numeric_value is not None:
            latest[row.parameter_name] = row.numeric_value
    trends: Dict[str, Any] = {"improving": [], "stable": [], "worsening": [], "dataPoints": len(history)}
    for finding in findings:
        name = finding["parameter"]
        entry = rules["parameters"].get(name)
        current = as_float(finding["value"])
        if entry is None or current is None or name not in latest:
            continue
        direction = calculate_trend([latest[name], current])
        if direction == TREND_INCREASING:
            bucket = "worsening" if entry["higher_is_worse"] else "improving"
        elif direction == TREND_DECREASING:
            bucket = "improving" if entry["higher_is_worse"] else "worsening"
        else:
            bucket = "stable"
        trends[bucket].append({"parameter": name, "previous": latest[name], "current": current})
    return trends


def build_recommendations(scored: Dict[str, Any], rules=None) -> Dict[str, List[str]]:
    rules = rules or RULES
    recs = rules["recommendations"]
    immediate, short_term, long_term = [], [], []
    for finding in scored["riskFactors"]:
        if finding["riskLevel"] == "high":
            immediate.append(recs["immediate_template"].format(**finding))
        else:
            short_term.append(recs["short_term_template"].format(**finding))
        advice = recs["long_term"].get(finding["category"])
        if advice and advice not in long_term:
            long_term.append(advice)
    defaults = recs["defaults"]
    return {
        "immediate": immediate or list(defaults["immediate"]),
        "shortTerm": short_term or list(defaults["short_term"]),
        "longTerm": long_term or list(defaults["long_term"]),
    }


def build_insights_prompt(scored: Dict[str, Any], profile: Dict[str, Any]) -> str:
    factors = "\n".join(f"- {f['parameter']}: {f['value']} {f['unit']} ({f['riskLevel']})" for f in scored["riskFactors"]) or "- none"
    protective = ", ".join(f["parameter"] for f in scored["protectiveFactors"]) or "none"
    age = profile.get("age") or "unknown"
    sex = profile.get("sex") or profile.get("gender") or "unknown"
    return (
        "As a health analytics expert, provide insights on this risk assessment:\n\n"
        f"Overall risk: {scored['overallLevel']} (score {scored['overallScore']}/100)\n"
        f"Category scores: {scored['categoryScores']}\n"
        f"Risk factors:\n{factors}\n"
        f"Protective factors: {protective}\n"
        f"Patient: age {age}, sex {sex}\n\n"
        "Provide 2-3 sentences of personalized insight focusing on the most important "
        "findings and actionable next steps. Remind the reader to consult a healthcare provider."
    )


async def generate_insights(scored: Dict[str, Any], profile: Dict[str, Any], llm_client: Optional[CompletionClient]):
    """Return (text, llm_used). Any LLM problem yields the fixed fallback."""
    if llm_client is None:
        return INSIGHTS_FALLBACK, False
    try:
        reply = await llm_client.complete(build_insights_prompt(scored, profile), max_tokens=350, temperature=0.7)
    except Exception as exc:
        logger.warning({"function": "generate_insights", "error": str(exc)})
        return INSIGHTS_FALLBACK, False
    reply = (reply or "").strip()
    return (reply, True) if reply else (INSIGHTS_FALLBACK, False)


async def assess_risk(
    db: Session,
    session: AnonymousSession,
    parameters: Sequence[Dict[str, Any]],
    profile: Optional[Dict[str, Any]] = None,
    llm_client: Optional[CompletionClient] = None,
) -> Dict[str, Any]:
    """Score, compare with stored history, narrate and persist one assessment."""
    profile = profile or {}
    sex = profile.get("sex") or profile.get("gender")
    scored = score_parameters(parameters, sex)

    names = sorted({f["parameter"] for f in scored["findings"]})
    history = parameter_history(db, session.session_token, names=names, limit=HISTORY_LIMIT)
    trends = compare_with_history(scored["findings"], history)
    recommendations = build_recommendations(scored)
    insights, llm_used = await generate_insights(scored, profile, llm_client)

    record = RiskAssessmentRecord(
        session_token=session.session_token,
        overall_score=scored["overallScore"],
        overall_level=scored["overallLevel"],
        category_scores=scored["categoryScores"],
        parameter_count=len(parameters),
        insights=insights,
        llm_used=llm_used,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info({
        "function": "assess_risk",
        "assessment_id": record.id,
        "overall_level": scored["overallLevel"],
        "parameters": len(parameters),
        "history_points": len(history),
    })
    return {
        "assessmentId": record.id,
        "overallRisk": {"score": scored["overallScore"], "level": scored["overallLevel"]},
        "categoryScores": scored["categoryScores"],
        "riskFactors": scored["riskFactors"],
        "protectiveFactors": scored["protectiveFactors"],
        "trends": trends,
        "recommendations": recommendations,
        "insights": insights,
        "parametersAnalyzed": len(parameters),
        "historicalDataPoints": len(history),
    }
