# engine/life_expectancy.py

"""
Stochastic terminal age for one realization.

A uniform draw picks one of three bands around the baseline life expectancy:
- u < 0.25            early mortality   [max(age+5, base-8), base-3]
- 0.25 <= u < 0.75    median range      [base-2, base+2]
- u >= 0.75           longevity tail    [base+3, min(base+7, 105)]
and a second draw places the age uniformly inside the band. The result is
shifted by sex (female +1.5, male -1.5) and the explicit health offset,
clamped to [max(age+1, 70), 105] and rounded.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from engine.mortality import round_half_up
from engine.rng import derive_rng

MAX_LIFE_EXPECTANCY = 105
MIN_LIFE_EXPECTANCY = 70
SEX_ADJUSTMENT_YEARS = 1.5
DEFAULT_COUPLE_CORRELATION = 0.4


@dataclass(frozen=True)
class LifeExpectancyInputs:
    base_life_expectancy: float
    current_age: float
    sex: Optional[str] = None
    health_adjustment: float = 0.0


def _band_for(u: float, inputs: LifeExpectancyInputs) -> Tuple[float, float]:
    base = inputs.base_life_expectancy
    if u < 0.25:
        return max(inputs.current_age + 5, base - 8), base - 3
    if u < 0.75:
        return base - 2, base + 2
    return base + 3, min(base + 7, MAX_LIFE_EXPECTANCY)


def _terminal_age(inputs: LifeExpectancyInputs, u: float, band_rng) -> int:
    low, high = _band_for(u, inputs)
    age = low + band_rng.next() * (high - low)

    if inputs.sex == "female":
        age += SEX_ADJUSTMENT_YEARS
    elif inputs.sex == "male":
        age -= SEX_ADJUSTMENT_YEARS
    age += inputs.health_adjustment

    floor_age = max(inputs.current_age + 1, MIN_LIFE_EXPECTANCY)
    return round_half_up(max(floor_age, min(MAX_LIFE_EXPECTANCY, age)))


def generate_life_expectancy(inputs: LifeExpectancyInputs, rng) -> int:
    """One terminal age for a single person."""
    child = derive_rng(rng, "lifeexp-single", inputs.current_age)
    u = child.next()
    return _terminal_age(inputs, u, child)


def generate_couple_life_expectancy(
    user: LifeExpectancyInputs,
    spouse: LifeExpectancyInputs,
    rng,
    correlation: float = DEFAULT_COUPLE_CORRELATION,
) -> Tuple[int, int]:
    """
    Correlated terminal ages for a couple.

    The spouse's band selector is `correlation * u_user + (1 - correlation) * u_indep`,
    so a long-lived user tilts the spouse toward the longevity tail.
    """
    child = derive_rng(rng, "lifeexp-couple", user.current_age)
    u_user = child.next()
    u_indep = child.next()
    u_spouse = correlation * u_user + (1.0 - correlation) * u_indep

    user_age = _terminal_age(user, u_user, derive_rng(child, "lifeexp-withrandom", user.current_age))
    spouse_age = _terminal_age(spouse, u_spouse, derive_rng(child, "lifeexp-withrandom", spouse.current_age))
    return user_age, spouse_age


def analyze_life_expectancy_distribution(inputs: LifeExpectancyInputs, rng, samples: int = 1000) -> Dict[str, float]:
    """Summary of `samples` draws, each from its own child of `rng`."""
    draws = np.array(
        [generate_life_expectancy(inputs, derive_rng(rng, "lifeexp-analysis", i)) for i in range(samples)],
        dtype=float,
    )
    draws.sort()
    n = len(draws)
    return {
        "mean": float(draws.mean()),
        "median": float(draws[n // 2]),
        "p10": float(draws[int(n * 0.10)]),
        "p25": float(draws[int(n * 0.25)]),
        "p75": float(draws[int(n * 0.75)]),
        "p90": float(draws[int(n * 0.90)]),
        "min": float(draws[0]),
        "max": float(draws[-1]),
    }


__all__ = [
    "LifeExpectancyInputs",
    "generate_life_expectancy",
    "generate_couple_life_expectancy",
    "analyze_life_expectancy_distribution",
]
