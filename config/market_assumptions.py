# =============================================================================
# Market Info used in simulations
# =============================================================================

# Regime-switching model: (mean stock return, stock volatility, expected
# duration in years, next-year transition probabilities). Transition rows
# are walked in REGIME_ORDER and each sums to 1.
REGIME_ORDER = ("bull", "bear", "normal", "crisis")

MARKET_REGIMES = {
    "bull": {
        "mean_return": 0.15,
        "volatility": 0.12,
        "duration": 5.0,
        "transitions": {"bull": 0.70, "bear": 0.20, "normal": 0.10, "crisis": 0.00},
    },
    "bear": {
        "mean_return": -0.10,
        "volatility": 0.25,
        "duration": 1.5,
        "transitions": {"bull": 0.30, "bear": 0.30, "normal": 0.30, "crisis": 0.10},
    },
    "normal": {
        "mean_return": 0.07,
        "volatility": 0.15,
        "duration": 3.0,
        "transitions": {"bull": 0.30, "bear": 0.20, "normal": 0.40, "crisis": 0.10},
    },
    "crisis": {
        "mean_return": -0.30,
        "volatility": 0.40,
        "duration": 1.0,
        "transitions": {"bull": 0.10, "bear": 0.40, "normal": 0.40, "crisis": 0.10},
    },
}

# Starting regime, with more weight on bad markets close to retirement
initial_regime_probs = {"bull": 0.30, "bear": 0.15, "normal": 0.50, "crisis": 0.05}
initial_regime_probs_near_retirement = {"bull": 0.25, "bear": 0.25, "normal": 0.40, "crisis": 0.10}

# Sequence-of-returns window around the retirement date
near_retirement_years = 5
near_retirement_vol_multiplier = 1.2
near_retirement_bear_multiplier = 1.5
near_retirement_bear_cap = 0.40
near_retirement_crisis_multiplier = 2.0
near_retirement_crisis_cap = 0.15
near_retirement_bull_multiplier = 0.7
near_retirement_normal_multiplier = 0.8

# Bonds and cash
bond_mu = 0.04
bond_sigma = 0.05
cash_return = 0.02

# A portfolio cannot lose more than everything in one year
min_portfolio_return = -1.0

# Deterministic expected return used for the retirement-date projection
expected_stock_return = 0.07
