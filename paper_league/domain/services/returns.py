"""Weighted portfolio return."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from paper_league.domain.models.market_data import EffectiveQuote

from .market import is_number


def _return_of(quote: EffectiveQuote | Mapping[str, Any] | None) -> Any:
    if quote is None:
        return None
    if isinstance(quote, Mapping):
        return quote.get("return_pct")
    return quote.return_pct


def weighted_return(
    weights: Mapping[str, Any] | None,
    effective_market: Mapping[str, EffectiveQuote | Mapping[str, Any]] | None,
) -> float:
    """Weight-normalised average of effective returns, in percent.

    Weights <= 0 and instruments without a numeric return are left out of
    both the numerator and the denominator, so a fetch failure on one
    instrument renormalises over the rest instead of counting as a 0% return.
    Returns 0.0 when nothing usable remains.
    """
    if not weights or not effective_market:
        return 0.0
    total_weight = 0.0
    weighted_sum = 0.0
    for code, weight in weights.items():
        if not is_number(weight) or weight <= 0:
            continue
        ret = _return_of(effective_market.get(code))
        if not is_number(ret):
            continue
        total_weight += weight
        weighted_sum += weight * ret
    return weighted_sum / total_weight if total_weight > 0 else 0.0
