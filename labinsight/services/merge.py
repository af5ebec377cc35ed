"""Resolve validated candidates to one canonical reading per parameter."""
from __future__ import annotations

import logging
import os
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from labinsight.services.candidates import CanonicalParameter, Strategy, ValidatedParameter
from labinsight.services.validation import normalize_date

logger = logging.getLogger("labinsight")

# Tiers are tried in order; strategies inside one tier share a rank and are
# taken in the order listed.
DEFAULT_PRIORITY: Tuple[Tuple[Strategy, ...], ...] = (
    (Strategy.TABLE, Strategy.PATTERN),
    (Strategy.LLM,),
    (Strategy.FUZZY,),
)

PriorityOrder = Sequence[Union[Strategy, Sequence[Strategy]]]


def parse_priority(raw: Optional[str]) -> List[Strategy]:
    """Parse ``"table,pattern,llm,fuzzy"``; unknown names are ignored, missing ones appended."""
    order: List[Strategy] = []
    for token in (raw or "").split(","):
        token = token.strip().lower()
        if not token:
            continue
        try:
            strategy = Strategy(token)
        except ValueError:
            logger.warning({"function": "parse_priority", "ignored": token})
            continue
        if strategy not in order:
            order.append(strategy)
    for tier in DEFAULT_PRIORITY:
        for strategy in tier:
            if strategy not in order:
                order.append(strategy)
    return order


def _flatten(priority: Optional[PriorityOrder]) -> List[Strategy]:
    if priority is None:
        env = os.getenv("MERGE_PRIORITY")
        if env:
            return parse_priority(env)
        priority = DEFAULT_PRIORITY
    flat: List[Strategy] = []
    for entry in priority:
        tier: Iterable[Strategy] = (entry,) if isinstance(entry, Strategy) else entry
        for strategy in tier:
            if strategy not in flat:
                flat.append(strategy)
    return flat


def merge(
    lists_by_strategy: Mapping[Strategy, Sequence[ValidatedParameter]],
    test_date: Optional[str] = None,
    priority: Optional[PriorityOrder] = None,
    today: Optional[date] = None,
) -> List[CanonicalParameter]:
    """First-priority-wins merge.

    Later duplicates for an already resolved name are discarded, never
    averaged. Output keeps the order in which names were first resolved.
    Every reading's date (its own, else the document's) goes through the same
    normalization.
    """
    resolved: Dict[str, CanonicalParameter] = {}
    for strategy in _flatten(priority):
        for item in lists_by_strategy.get(strategy, ()):
            if item.parameter in resolved:
                continue
            when = normalize_date(item.date or test_date, today=today)
            resolved[item.parameter] = CanonicalParameter(
                parameter=item.parameter,
                value=item.value,
                numeric_value=item.numeric_value,
                unit=item.unit,
                status=item.status,
                reference_range=item.reference_range,
                category=item.category,
                source=item.source,
                test_date=when.date,
                date_confidence=when.confidence,
            )
    return list(resolved.values())
