"""Tests for paper_league/domain/services/returns.py."""

import pytest

from paper_league.domain.models.market_data import EffectiveQuote
from paper_league.domain.services.returns import weighted_return


def _market(**returns):
    return {code: EffectiveQuote(return_pct=r) for code, r in returns.items()}


def test_single_instrument_full_weight():
    assert weighted_return({"BTC": 1.0}, _market(BTC=4.0)) == pytest.approx(4.0)


def test_weighted_average():
    result = weighted_return({"BTC": 0.25, "XAU": 0.75}, _market(BTC=4.0, XAU=-2.0))
    assert result == pytest.approx(-0.5)


def test_missing_return_renormalises_over_remaining_weights():
    market = _market(BTC=4.0, XU100=None)
    assert weighted_return({"BTC": 0.5, "XU100": 0.5}, market) == pytest.approx(4.0)


def test_instrument_absent_from_market_is_skipped():
    assert weighted_return({"BTC": 0.5, "ETH": 0.5}, _market(BTC=2.0)) == pytest.approx(2.0)


def test_zero_and_negative_weights_ignored():
    result = weighted_return({"BTC": 1.0, "XAU": 0.0, "ETH": -1.0}, _market(BTC=3.0, XAU=50.0, ETH=50.0))
    assert result == pytest.approx(3.0)


def test_no_usable_returns_is_zero():
    assert weighted_return({"BTC": 1.0}, _market(BTC=None)) == 0.0


def test_empty_inputs_are_zero():
    assert weighted_return({}, _market(BTC=1.0)) == 0.0
    assert weighted_return({"BTC": 1.0}, {}) == 0.0
    assert weighted_return(None, None) == 0.0


def test_accepts_plain_mapping_quotes():
    assert weighted_return({"BTC": 1.0}, {"BTC": {"return_pct": 1.5}}) == pytest.approx(1.5)


def test_non_numeric_weight_ignored():
    assert weighted_return({"BTC": "1", "XAU": 1.0}, _market(BTC=9.0, XAU=1.0)) == pytest.approx(1.0)


def test_league_example_sixty_forty():
    assert weighted_return({"A": 0.6, "B": 0.4}, _market(A=10.0, B=-5.0)) == pytest.approx(4.0)
