# engine/mortality.py

"""
Age, sex and health adjusted mortality.

Rates come from engine.mortality_tables; single-year survival draws use a
child stream derived from the caller's generator with the label "mortality"
and the rounded age as salt, so a given age always consumes the same amount
of the parent stream.
"""

import math
from dataclasses import dataclass
from typing import Tuple

from errors import InvalidParameterError
from engine.mortality_tables import (
    HEALTH_MULTIPLIERS,
    MAX_TABLE_AGE,
    MIN_TABLE_AGE,
    get_base_qx,
)
from engine.rng import derive_rng

VALID_SEXES = ("male", "female")


@dataclass(frozen=True)
class MortalityProfile:
    current_age: float
    sex: str = "male"
    health: str = "good"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _check_profile(sex: str, health: str) -> None:
    if sex not in VALID_SEXES:
        raise InvalidParameterError("sex", sex, f"expected one of {VALID_SEXES}")
    if health not in HEALTH_MULTIPLIERS:
        raise InvalidParameterError("health", health, f"expected one of {tuple(HEALTH_MULTIPLIERS)}")


# =============================================================================
# RATE AND SURVIVAL QUERIES
# =============================================================================

def annual_mortality_rate(age: float, sex: str = "male", health: str = "good") -> float:
    """
    Probability of dying within one year at `age`.

    Ages below the table start use the age-50 rate; ages past 120 are certain
    death. The health-adjusted rate is capped at 1.0.
    """
    _check_profile(sex, health)
    table_age = round_half_up(age)
    if table_age > MAX_TABLE_AGE:
        return 1.0
    table_age = max(table_age, MIN_TABLE_AGE)
    rate = get_base_qx(table_age, sex) * HEALTH_MULTIPLIERS[health]
    return min(1.0, max(0.0, rate))


def survival_probability(from_age: float, to_age: float, sex: str = "male", health: str = "good") -> float:
    """Product of (1 - qx) over each integer age in [from_age, to_age)."""
    if to_age <= from_age:
        return 1.0
    prob = 1.0
    for age in range(round_half_up(from_age), round_half_up(to_age)):
        prob *= 1.0 - annual_mortality_rate(age, sex, health)
    return prob


def life_expectancy(profile: MortalityProfile) -> int:
    """
    Expected age at death, counting half a year for the year of death.
    """
    start = round_half_up(profile.current_age)
    total_years = 0.0
    cumulative = 1.0
    survival = 1.0
    for future_age in range(start + 1, MAX_TABLE_AGE + 1):
        survival *= 1.0 - annual_mortality_rate(future_age - 1, profile.sex, profile.health)
        total_years += (cumulative - survival) * 0.5
        cumulative = survival
        if future_age < MAX_TABLE_AGE:
            total_years += survival
    return round_half_up(profile.current_age + total_years)


def percentile_life_expectancy(profile: MortalityProfile, percentile: float) -> int:
    """
    Smallest age whose survival probability from the current age has dropped
    to `percentile`/100 (e.g. 10 gives the age only one in ten reaches).
    """
    target = percentile / 100.0
    start = round_half_up(profile.current_age)
    survival = 1.0
    for age in range(start + 1, MAX_TABLE_AGE + 1):
        survival *= 1.0 - annual_mortality_rate(age - 1, profile.sex, profile.health)
        if survival <= target:
            return age
    return MAX_TABLE_AGE


# =============================================================================
# STOCHASTIC SURVIVAL
# =============================================================================

def simulate_survival(profile: MortalityProfile, rng) -> bool:
    """True when the person survives the year at `profile.current_age`."""
    rate = annual_mortality_rate(profile.current_age, profile.sex, profile.health)
    child = derive_rng(rng, "mortality", round_half_up(profile.current_age or 0))
    return child.next() > rate


def simulate_couples_survival(user: MortalityProfile, spouse: MortalityProfile, rng) -> Tuple[bool, bool]:
    """Independent survival draws for both partners, user first."""
    user_survives = simulate_survival(user, rng)
    spouse_survives = simulate_survival(spouse, rng)
    return user_survives, spouse_survives


__all__ = [
    "MortalityProfile",
    "annual_mortality_rate",
    "survival_probability",
    "life_expectancy",
    "percentile_life_expectancy",
    "simulate_survival",
    "simulate_couples_survival",
]
