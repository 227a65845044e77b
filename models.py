# models.py
import json
import math
from dataclasses import dataclass, field, fields, asdict, replace
from typing import Any, Dict, List, Optional

import pandas as pd

from errors import InvalidParameterError
from config.expense_assumptions import default_healthcare_share

BUCKET_NAMES = ("tax_deferred", "tax_free", "capital_gains", "cash_equivalents")
FILING_STATUSES = ("single", "married", "head_of_household")
SEXES = ("male", "female")
HEALTH_STATUSES = ("excellent", "good", "fair", "poor")

# Whole years; the simulator counts them with range()
AGE_FIELDS = ("current_age", "retirement_age", "life_expectancy", "spouse_age", "spouse_life_expectancy")

DEFAULT_MAX_RESULT_BYTES = 2_000_000


# =============================================================================
# ASSET BUCKETS
# =============================================================================

@dataclass(frozen=True)
class AssetBuckets:
    """
    The four tax-character pools of one realization.

    Immutable: every operation returns a new value. Pools are clamped at zero
    and `total_assets` is always their sum.
    """
    tax_deferred: float = 0.0
    tax_free: float = 0.0
    capital_gains: float = 0.0
    cash_equivalents: float = 0.0
    total_assets: float = field(init=False)

    def __post_init__(self):
        for name in BUCKET_NAMES:
            value = float(getattr(self, name))
            if math.isnan(value) or value < 0.0:
                value = 0.0
            object.__setattr__(self, name, value)
        object.__setattr__(
            self,
            "total_assets",
            self.tax_deferred + self.tax_free + self.capital_gains + self.cash_equivalents,
        )

    def grow(self, rate: float) -> "AssetBuckets":
        """Apply one year's portfolio return to every pool."""
        factor = 1.0 + rate
        return AssetBuckets(
            self.tax_deferred * factor,
            self.tax_free * factor,
            self.capital_gains * factor,
            self.cash_equivalents * factor,
        )

    def deposit(self, amount: float, allocation: Dict[str, float]) -> "AssetBuckets":
        """Add `amount` split across pools by the `allocation` weights."""
        return AssetBuckets(**{
            name: getattr(self, name) + amount * allocation.get(name, 0.0)
            for name in BUCKET_NAMES
        })

    def withdraw(self, **amounts: float) -> "AssetBuckets":
        """Subtract per-pool amounts (e.g. tax_deferred=10_000)."""
        return AssetBuckets(**{
            name: getattr(self, name) - amounts.get(name, 0.0)
            for name in BUCKET_NAMES
        })

    def add(self, **amounts: float) -> "AssetBuckets":
        return AssetBuckets(**{
            name: getattr(self, name) + amounts.get(name, 0.0)
            for name in BUCKET_NAMES
        })

    def as_dict(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in BUCKET_NAMES}


# =============================================================================
# SIMULATION PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class SimulationParameters:
    # Household
    current_age: int
    retirement_age: int
    life_expectancy: int = 93
    gender: str = "male"
    health_status: str = "good"
    health_adjustment_years: float = 0.0

    spouse_age: Optional[int] = None
    spouse_life_expectancy: Optional[int] = None
    spouse_gender: str = "female"
    spouse_health_status: str = "good"
    spouse_health_adjustment_years: float = 0.0

    # Starting balances by tax character
    tax_deferred: float = 0.0
    tax_free: float = 0.0
    capital_gains: float = 0.0
    cash_equivalents: float = 0.0

    # Income and expenses (today's dollars, annual)
    annual_guaranteed_income: float = 0.0
    social_security_benefit: Optional[float] = None   # None: all guaranteed income is Social Security
    annual_expenses: float = 0.0                       # total, healthcare included
    annual_healthcare_costs: Optional[float] = None
    inflation_rate: float = 0.025
    healthcare_inflation_rate: float = 0.045
    annual_savings: float = 0.0

    # Portfolio & strategy
    stock_allocation: float = 0.60
    bond_allocation: float = 0.35
    state: str = "FL"
    filing_status: str = "single"
    use_guardrails: bool = False
    legacy_goal: float = 0.0
    withdrawal_rate: Optional[float] = None            # fixed-real draw on the retirement-date portfolio
    birth_year: Optional[int] = None

    # --- derived views ---

    @property
    def is_couple(self) -> bool:
        return self.spouse_age is not None

    @property
    def current_retirement_assets(self) -> float:
        return self.starting_buckets().total_assets

    @property
    def cash_allocation(self) -> float:
        return max(0.0, 1.0 - self.stock_allocation - self.bond_allocation)

    @property
    def healthcare_costs(self) -> float:
        if self.annual_healthcare_costs is None:
            return self.annual_expenses * default_healthcare_share
        return self.annual_healthcare_costs

    @property
    def social_security_amount(self) -> float:
        if self.social_security_benefit is None:
            return self.annual_guaranteed_income
        return self.social_security_benefit

    @property
    def pension_amount(self) -> float:
        """Guaranteed income that is not Social Security (taxed as ordinary income)."""
        return max(0.0, self.annual_guaranteed_income - self.social_security_amount)

    def starting_buckets(self) -> AssetBuckets:
        return AssetBuckets(self.tax_deferred, self.tax_free, self.capital_gains, self.cash_equivalents)

    def with_overrides(self, **changes: Any) -> "SimulationParameters":
        return replace(self, **changes)

    # --- validation ---

    def validate(self) -> "SimulationParameters":
        """
        Raise InvalidParameterError on the first bad field.

        Returns self, or a copy with whole-number float ages (65.0, as read
        from a profile) converted to int.
        """
        numeric_fields = [
            "current_age", "retirement_age", "life_expectancy",
            "tax_deferred", "tax_free", "capital_gains", "cash_equivalents",
            "annual_guaranteed_income", "annual_expenses", "inflation_rate",
            "healthcare_inflation_rate", "annual_savings", "stock_allocation",
            "bond_allocation", "legacy_goal",
            "health_adjustment_years", "spouse_health_adjustment_years",
        ]
        optional_fields = [
            "spouse_age", "spouse_life_expectancy", "social_security_benefit",
            "annual_healthcare_costs", "withdrawal_rate",
        ]
        for name in numeric_fields:
            _check_number(name, getattr(self, name), allow_negative=name.endswith("adjustment_years"))
        for name in optional_fields:
            value = getattr(self, name)
            if value is not None:
                _check_number(name, value)

        if self.current_age <= 0:
            raise InvalidParameterError("current_age", self.current_age, "must be positive")
        if self.life_expectancy <= 0:
            raise InvalidParameterError("life_expectancy", self.life_expectancy, "must be positive")
        for name in ("stock_allocation", "bond_allocation"):
            if getattr(self, name) > 1.0:
                raise InvalidParameterError(name, getattr(self, name), "must be a fraction in [0, 1]")
        if self.stock_allocation + self.bond_allocation > 1.0 + 1e-9:
            raise InvalidParameterError(
                "bond_allocation", self.bond_allocation, "stock and bond weights exceed 100%"
            )
        if self.withdrawal_rate is not None and self.withdrawal_rate > 1.0:
            raise InvalidParameterError("withdrawal_rate", self.withdrawal_rate, "must be a fraction in [0, 1]")
        if self.social_security_amount > self.annual_guaranteed_income + 1e-9:
            raise InvalidParameterError(
                "social_security_benefit", self.social_security_benefit, "exceeds annual_guaranteed_income"
            )
        if self.healthcare_costs > self.annual_expenses + 1e-9:
            raise InvalidParameterError(
                "annual_healthcare_costs", self.annual_healthcare_costs, "exceeds annual_expenses"
            )
        if self.filing_status not in FILING_STATUSES:
            raise InvalidParameterError("filing_status", self.filing_status, f"expected one of {FILING_STATUSES}")
        for name, allowed in (("gender", SEXES), ("spouse_gender", SEXES),
                              ("health_status", HEALTH_STATUSES), ("spouse_health_status", HEALTH_STATUSES)):
            if getattr(self, name) not in allowed:
                raise InvalidParameterError(name, getattr(self, name), f"expected one of {allowed}")
        if self.spouse_life_expectancy is not None and self.spouse_age is None:
            raise InvalidParameterError("spouse_life_expectancy", self.spouse_life_expectancy, "set without spouse_age")

        whole_ages = {}
        for name in AGE_FIELDS:
            value = getattr(self, name)
            if value is None or isinstance(value, int):
                continue
            if not float(value).is_integer():
                raise InvalidParameterError(name, value, "must be a whole number of years")
            whole_ages[name] = int(value)
        return replace(self, **whole_ages) if whole_ages else self


def _check_number(name: str, value: Any, allow_negative: bool = False) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidParameterError(name, value, "must be a number")
    if math.isnan(value) or math.isinf(value):
        raise InvalidParameterError(name, value, "must be finite")
    if not allow_negative and value < 0:
        raise InvalidParameterError(name, value, "must not be negative")


# =============================================================================
# RESULTS
# =============================================================================

@dataclass(frozen=True)
class YearlyCashFlowRecord:
    year: int
    age: int
    phase: str
    portfolio_balance: float
    guaranteed_income: float
    gross_withdrawal: float
    net_cash_flow: float
    taxes: float
    irmaa_surcharge: float
    market_regime: str
    portfolio_return: float = 0.0
    required_minimum_distribution: float = 0.0
    converged: bool = True


@dataclass
class ScenarioResult:
    success: bool
    ending_balance: float
    depletion_year: Optional[int]
    total_taxes: float
    total_irmaa: float
    terminal_age: int
    outcome: str
    years_in_bear: int = 0
    years_in_crisis: int = 0
    gross_income: float = 0.0
    irmaa_years: int = 0
    unconverged_years: int = 0
    legacy_met: bool = False
    yearly_records: List[YearlyCashFlowRecord] = field(default_factory=list)

    @property
    def effective_tax_rate(self) -> float:
        return self.total_taxes / self.gross_income if self.gross_income > 0 else 0.0


@dataclass
class AggregateResult:
    iterations: int
    seed: int
    probability_of_success: float
    percentile_10: float
    percentile_25: float
    percentile_50: float
    percentile_75: float
    percentile_90: float
    worst_case_ending_balance: float
    safe_withdrawal_rate: Optional[float]
    average_effective_tax_rate: float
    irmaa_incidence: float
    average_years_in_bear: float
    average_years_in_crisis: float
    successful_scenarios: int
    failed_scenarios: int
    average_depletion_year: Optional[float]
    legacy_goal_probability: float
    convergence_failure_rate: float
    current_retirement_assets: float
    projected_retirement_portfolio: float
    sample_yearly_records: List[YearlyCashFlowRecord] = field(default_factory=list)

    @property
    def median_ending_balance(self) -> float:
        return self.percentile_50

    def percentiles(self) -> Dict[int, float]:
        return {
            10: self.percentile_10,
            25: self.percentile_25,
            50: self.percentile_50,
            75: self.percentile_75,
            90: self.percentile_90,
        }

    def yearly_frame(self) -> pd.DataFrame:
        """Sample realization's timeline as a DataFrame (one row per year)."""
        if not self.sample_yearly_records:
            return pd.DataFrame(columns=[f.name for f in fields(YearlyCashFlowRecord)])
        return pd.DataFrame([asdict(r) for r in self.sample_yearly_records])

    def to_dict(self, max_bytes: int = DEFAULT_MAX_RESULT_BYTES) -> Dict[str, Any]:
        """
        JSON-compatible dict. When the encoded result would exceed `max_bytes`,
        the per-year sample is dropped and `yearly_records_truncated` is set.
        """
        data = asdict(self)
        data["yearly_records_truncated"] = False
        if len(json.dumps(data)) > max_bytes:
            data["sample_yearly_records"] = []
            data["yearly_records_truncated"] = True
        return data
