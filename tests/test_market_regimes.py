from collections import Counter

import pytest

from config.market_assumptions import MARKET_REGIMES, REGIME_ORDER
from engine.market_regimes import MarketRegimeModel
from engine.rng import OverlayRandomSource, RandomSource


def test_transition_rows_sum_to_one():
    for name, entry in MARKET_REGIMES.items():
        assert sum(entry["transitions"].values()) == pytest.approx(1.0), name


def test_annual_return_blends_allocation_weights():
    model = MarketRegimeModel()
    rng = OverlayRandomSource(RandomSource(1), uniforms=[0.05], normals=[0.0, 0.0])
    step = model.annual_return("normal", 0.60, 0.35, rng)
    assert step.stock_return == pytest.approx(0.07)
    assert step.bond_return == pytest.approx(0.04)
    assert step.portfolio_return == pytest.approx(0.6 * 0.07 + 0.35 * 0.04 + 0.05 * 0.02)
    assert step.regime == "normal"
    assert step.next_regime == "bull"


def test_transition_walks_cumulative_row():
    model = MarketRegimeModel()
    # normal row: bull .30, bear .20, normal .40, crisis .10
    assert model.transition("normal", OverlayRandomSource(RandomSource(1), uniforms=[0.29])) == "bull"
    assert model.transition("normal", OverlayRandomSource(RandomSource(1), uniforms=[0.31])) == "bear"
    assert model.transition("normal", OverlayRandomSource(RandomSource(1), uniforms=[0.75])) == "normal"
    assert model.transition("normal", OverlayRandomSource(RandomSource(1), uniforms=[0.95])) == "crisis"


def test_portfolio_loss_is_clamped():
    crash = {
        name: {"mean_return": -5.0, "volatility": 0.0, "duration": 1.0,
               "transitions": {"bull": 0.0, "bear": 0.0, "normal": 1.0, "crisis": 0.0}}
        for name in REGIME_ORDER
    }
    step = MarketRegimeModel(crash).annual_return("crisis", 1.0, 0.0, RandomSource(3))
    assert step.portfolio_return == -1.0


def test_near_retirement_tilt():
    model = MarketRegimeModel()
    mean, vol, transitions = model.regime_parameters("normal", years_to_retirement=3)
    assert mean == 0.07
    assert vol == pytest.approx(0.15 * 1.2)
    assert sum(transitions.values()) == pytest.approx(1.0)
    assert transitions["bear"] == pytest.approx(0.30 / 0.98)
    assert transitions["crisis"] == pytest.approx(0.15 / 0.98)


def test_no_tilt_far_from_retirement_or_after():
    model = MarketRegimeModel()
    for ytr in (None, 10, -1):
        _, vol, transitions = model.regime_parameters("normal", ytr)
        assert vol == 0.15
        assert transitions == MARKET_REGIMES["normal"]["transitions"]


def test_bear_row_keeps_transitions_near_retirement():
    _, vol, transitions = MarketRegimeModel().regime_parameters("bear", 0)
    assert vol == pytest.approx(0.25 * 1.2)
    assert transitions == MARKET_REGIMES["bear"]["transitions"]


def test_initial_regime_is_reproducible_and_mostly_normal():
    model = MarketRegimeModel()
    picks = [model.initial_regime(20, RandomSource(seed)) for seed in range(1, 2001)]
    assert picks == [model.initial_regime(20, RandomSource(seed)) for seed in range(1, 2001)]
    counts = Counter(picks)
    assert set(counts) <= set(REGIME_ORDER)
    assert counts.most_common(1)[0][0] == "normal"


def test_stationary_distribution():
    dist = MarketRegimeModel().stationary_distribution()
    assert sum(dist.values()) == pytest.approx(1.0)
    assert all(p > 0 for p in dist.values())
    assert dist["crisis"] < dist["normal"]


def test_simulated_path_has_clustered_regimes():
    returns, labels = MarketRegimeModel().simulate_path(3000, 0.6, 0.35, RandomSource(21))
    assert len(returns) == 3000 and len(labels) == 3000
    assert (returns >= -1.0).all()
    dist = MarketRegimeModel().stationary_distribution()
    freq = Counter(labels)
    for name in REGIME_ORDER:
        assert freq[name] / 3000 == pytest.approx(dist[name], abs=0.05)
