# engine/__init__.py

# The plan-level entry point
from .monte_carlo import run_monte_carlo, MonteCarloAggregator

# Lower-level pieces used standalone by optimization code
from .simulator import ScenarioSimulator
from .rng import RandomSource, derive_rng
from .tax_engine import (
    taxable_social_security,
    calculate_irmaa,
    calculate_rmd,
    calculate_combined_tax_rate,
)
from .mortality import (
    annual_mortality_rate,
    survival_probability,
    percentile_life_expectancy,
    simulate_survival,
)
