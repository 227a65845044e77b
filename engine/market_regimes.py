# market_regimes.py
#
# Regime-switching market returns.
# A 4-state Markov chain (bull/bear/normal/crisis) decides the stock return
# distribution for each year; crisis and bear years cluster, which gives the
# sequence-of-returns risk that i.i.d. annual draws miss.
#

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from config.market_assumptions import (
    REGIME_ORDER,
    MARKET_REGIMES,
    initial_regime_probs,
    initial_regime_probs_near_retirement,
    near_retirement_years,
    near_retirement_vol_multiplier,
    near_retirement_bear_multiplier,
    near_retirement_bear_cap,
    near_retirement_crisis_multiplier,
    near_retirement_crisis_cap,
    near_retirement_bull_multiplier,
    near_retirement_normal_multiplier,
    bond_mu,
    bond_sigma,
    cash_return,
    min_portfolio_return,
)
from engine.rng import derive_rng


@dataclass(frozen=True)
class RegimeStep:
    portfolio_return: float
    stock_return: float
    bond_return: float
    regime: str
    next_regime: str


def _walk_cumulative(probs: Dict[str, float], u: float) -> str:
    """Pick the regime whose cumulative probability first covers `u`."""
    cumulative = 0.0
    for name in REGIME_ORDER:
        cumulative += probs.get(name, 0.0)
        if u < cumulative:
            return name
    # Rounding left u above the final cumulative sum
    return REGIME_ORDER[-1] if probs.get(REGIME_ORDER[-1], 0.0) > 0 else "normal"


class MarketRegimeModel:
    """
    Generates regime-conditioned annual portfolio returns.

    Each year: stock ~ N(regime mean, regime vol), bond ~ N(0.04, 0.05), cash
    earns a fixed 2%; the blend uses the allocation weights. The next regime is
    then drawn by walking the cumulative transition row with one uniform.
    Within `near_retirement_years` of the retirement date the regime is
    more volatile and more likely to turn bad.
    """

    def __init__(self, regimes: Optional[Dict[str, Dict]] = None):
        self.regimes = regimes or MARKET_REGIMES

    # =========================================================================
    # REGIME SELECTION
    # =========================================================================
    def initial_regime(self, years_to_retirement: int, rng) -> str:
        probs = (
            initial_regime_probs_near_retirement
            if years_to_retirement <= near_retirement_years
            else initial_regime_probs
        )
        child = derive_rng(rng, "initial-regime")
        return _walk_cumulative(probs, child.next())

    def regime_parameters(self, regime: str, years_to_retirement: Optional[int] = None) -> Tuple[float, float, Dict[str, float]]:
        """(mean, volatility, transitions) with the near-retirement tilt applied."""
        entry = self.regimes[regime]
        mean = entry["mean_return"]
        vol = entry["volatility"]
        transitions = dict(entry["transitions"])

        if years_to_retirement is not None and 0 <= years_to_retirement <= near_retirement_years:
            vol *= near_retirement_vol_multiplier
            if regime in ("normal", "bull"):
                transitions["bear"] = min(near_retirement_bear_cap, transitions["bear"] * near_retirement_bear_multiplier)
                transitions["crisis"] = min(near_retirement_crisis_cap, transitions["crisis"] * near_retirement_crisis_multiplier)
                transitions["bull"] *= near_retirement_bull_multiplier
                transitions["normal"] *= near_retirement_normal_multiplier
                total = sum(transitions.values())
                transitions = {k: v / total for k, v in transitions.items()}
        return mean, vol, transitions

    def transition(self, regime: str, rng, years_to_retirement: Optional[int] = None) -> str:
        _, _, transitions = self.regime_parameters(regime, years_to_retirement)
        return _walk_cumulative(transitions, rng.next())

    # =========================================================================
    # ANNUAL RETURN
    # =========================================================================
    def annual_return(
        self,
        regime: str,
        stock_allocation: float,
        bond_allocation: float,
        rng,
        years_to_retirement: Optional[int] = None,
    ) -> RegimeStep:
        mean, vol, transitions = self.regime_parameters(regime, years_to_retirement)

        stock_return = mean + vol * rng.normal()
        bond_return = bond_mu + bond_sigma * rng.normal()
        cash_weight = max(0.0, 1.0 - stock_allocation - bond_allocation)

        portfolio_return = (
            stock_allocation * stock_return
            + bond_allocation * bond_return
            + cash_weight * cash_return
        )
        portfolio_return = max(min_portfolio_return, portfolio_return)

        next_regime = _walk_cumulative(transitions, rng.next())
        return RegimeStep(portfolio_return, stock_return, bond_return, regime, next_regime)

    # =========================================================================
    # ANALYTICS
    # =========================================================================
    def transition_matrix(self) -> NDArray[np.float64]:
        """Row-stochastic matrix in REGIME_ORDER."""
        return np.array([
            [self.regimes[src]["transitions"].get(dst, 0.0) for dst in REGIME_ORDER]
            for src in REGIME_ORDER
        ])

    def stationary_distribution(self) -> Dict[str, float]:
        """Long-run share of years spent in each regime."""
        matrix = self.transition_matrix()
        eigvals, eigvecs = np.linalg.eig(matrix.T)
        vec = np.real(eigvecs[:, np.argmin(np.abs(eigvals - 1.0))])
        vec = vec / vec.sum()
        return {name: float(p) for name, p in zip(REGIME_ORDER, vec)}

    def simulate_path(
        self,
        n_years: int,
        stock_allocation: float,
        bond_allocation: float,
        rng,
        start_regime: str = "normal",
    ) -> Tuple[NDArray[np.float64], list]:
        """Portfolio returns and regime labels for `n_years` consecutive years."""
        returns = np.zeros(n_years)
        labels = []
        regime = start_regime
        for i in range(n_years):
            step = self.annual_return(regime, stock_allocation, bond_allocation, rng)
            returns[i] = step.portfolio_return
            labels.append(step.regime)
            regime = step.next_regime
        return returns, labels


__all__ = ["MarketRegimeModel", "RegimeStep"]
