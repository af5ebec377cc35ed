"""Per-parameter trend direction over a session's stored history."""
from __future__ import annotations

import calendar
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from labinsight.models.session import AnonymousSession
from labinsight.services.gemini import CompletionClient
from labinsight.services.parameter_catalog import resolve_parameter_name
from labinsight.services.session_store import parameter_history

logger = logging.getLogger("labinsight")

TREND_INCREASING = "increasing"
TREND_DECREASING = "decreasing"
TREND_STABLE = "stable"
TREND_INSUFFICIENT = "insufficient_data"

STABLE_BAND_PERCENT = 5.0

TIME_RANGES = {"3months": 3, "6months": 6, "1year": 12, "2years": 24}
DEFAULT_TIME_RANGE = "1year"

NO_TREND_DATA = "No trend data available for analysis."
TREND_FALLBACK = "Trend analysis unavailable. Please consult your healthcare provider for interpretation."


def calculate_trend(values: Sequence[float]) -> str:
    """Percent change first -> last; under 5% either way is stable."""
    if len(values) < 2:
        return TREND_INSUFFICIENT
    first, last = float(values[0]), float(values[-1])
    if first == 0:
        if last == 0:
            return TREND_STABLE
        return TREND_INCREASING if last > 0 else TREND_DECREASING
    percent_change = (last - first) / abs(first) * 100
    if abs(percent_change) < STABLE_BAND_PERCENT:
        return TREND_STABLE
    return TREND_INCREASING if percent_change > 0 else TREND_DECREASING


def window_start(time_range: str, today: Optional[date] = None) -> date:
    today = today or date.today()
    months = TIME_RANGES.get(time_range, TIME_RANGES[DEFAULT_TIME_RANGE])
    year, month = divmod(today.year * 12 + (today.month - 1) - months, 12)
    month += 1
    day = min(today.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _series(rows) -> List[Dict[str, Any]]:
    return [
        {
            "value": row.numeric_value if row.numeric_value is not None else 0.0,
            "unit": row.unit,
            "date": row.test_date.isoformat(),
            "referenceRange": row.reference_range,
            "status": row.status,
        }
        for row in rows
    ]


def collect_trends(
    db: Session,
    session: AnonymousSession,
    parameters: Optional[Sequence[str]] = None,
    time_range: str = DEFAULT_TIME_RANGE,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """Build trend entries. Named parameters need one point; the all-parameters view needs two."""
    today = today or date.today()
    start = window_start(time_range, today)
    history = parameter_history(db, session.session_token, start=start, end=today)

    by_name: Dict[str, list] = {}
    for row in history:
        by_name.setdefault(row.parameter_name, []).append(row)

    if parameters:
        names = [resolve_parameter_name(p) or p for p in parameters]
        min_points = 1
    else:
        names = sorted(by_name)
        min_points = 2

    trends = []
    for name in names:
        rows = by_name.get(name, [])
        if len(rows) < min_points:
            continue
        data = _series(rows)
        trends.append({
            "parameter": name,
            "data": data,
            "trend": calculate_trend([d["value"] for d in data]),
        })
    return trends


def build_trend_prompt(trends: List[Dict[str, Any]]) -> str:
    lines = []
    for trend in trends:
        oldest, latest = trend["data"][0], trend["data"][-1]
        lines.append(f"{trend['parameter']}: {oldest['value']} -> {latest['value']} {latest['unit'] or ''} ({trend['trend']})")
    summary = "\n".join(lines)
    return (
        "Analyze these health parameter trends and provide insights:\n\n"
        f"{summary}\n\n"
        "Please provide:\n"
        "1. Overall health trend assessment\n"
        "2. Notable improvements or concerns\n"
        "3. Recommendations for maintaining/improving trends\n"
        "4. Suggestions for discussion with healthcare provider\n\n"
        "Keep response concise (under 300 words) and encouraging."
    )


async def narrate_trends(trends: List[Dict[str, Any]], llm_client: Optional[CompletionClient]) -> str:
    if not trends:
        return NO_TREND_DATA
    if llm_client is None:
        return TREND_FALLBACK
    try:
        reply = await llm_client.complete(build_trend_prompt(trends), max_tokens=400, temperature=0.7)
    except Exception as exc:
        logger.warning({"function": "narrate_trends", "error": str(exc)})
        return TREND_FALLBACK
    return (reply or "").strip() or TREND_FALLBACK


async def analyze_trends(
    db: Session,
    session: AnonymousSession,
    parameters: Optional[Sequence[str]] = None,
    time_range: str = DEFAULT_TIME_RANGE,
    llm_client: Optional[CompletionClient] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    if time_range not in TIME_RANGES:
        time_range = DEFAULT_TIME_RANGE
    trends = collect_trends(db, session, parameters, time_range, today)
    return {
        "timeRange": time_range,
        "trendsFound": len(trends),
        "trendData": trends,
        "analysis": await narrate_trends(trends, llm_client),
    }
