# withdrawal_engine.py

# Finds the gross portfolio withdrawal that leaves a target amount after taxes.
#
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from models import AssetBuckets, BUCKET_NAMES
from engine.tax_engine import calculate_combined_tax_rate, calculate_irmaa, calculate_rmd

logger = logging.getLogger(__name__)

MAX_SOLVER_ITERATIONS = 20
CONVERGENCE_TOLERANCE = 100.0
INITIAL_TAX_BUFFER = 1.3
MAX_STEP_UP = 0.10
MAX_STEP_DOWN = 0.05
ASSUMED_GAIN_FRACTION = 0.5       # share of a brokerage sale that is realized gain

# Order in which the non-RMD part of a withdrawal is drawn
WITHDRAWAL_ORDER = ("cash_equivalents", "tax_deferred", "capital_gains", "tax_free")


@dataclass(frozen=True)
class WithdrawalResult:
    gross_withdrawal: float
    net_after_taxes: float
    total_taxes: float
    federal_tax: float
    state_tax: float
    capital_gains_tax: float
    taxable_ss: float
    modified_agi: float
    irmaa_surcharge: float        # per covered person, per year
    required_rmd: float
    reinvested: float
    shortfall: float
    marginal_rate: float
    draws: Dict[str, float] = field(default_factory=dict)
    buckets: Optional[AssetBuckets] = None

    @property
    def effective_tax_rate(self) -> float:
        return self.total_taxes / self.gross_withdrawal if self.gross_withdrawal > 0 else 0.0


@dataclass(frozen=True)
class Converged:
    value: WithdrawalResult
    iterations: int


@dataclass(frozen=True)
class MaxIterationsReached:
    best_estimate: WithdrawalResult
    iterations: int


SolverOutcome = Union[Converged, MaxIterationsReached]


def unwrap(outcome: SolverOutcome) -> WithdrawalResult:
    """The withdrawal of either outcome; non-convergence is not an error."""
    if isinstance(outcome, Converged):
        return outcome.value
    return outcome.best_estimate


def allocate_withdrawal(gross: float, buckets: AssetBuckets, rmd: float = 0.0) -> Dict[str, float]:
    """
    Split a gross withdrawal across the four pools.

    The RMD always comes out of tax-deferred first; the remainder follows
    WITHDRAWAL_ORDER. Never draws more than a pool holds, so the total drawn
    can fall short of `gross` once the portfolio runs dry.
    """
    draws = {name: 0.0 for name in BUCKET_NAMES}
    balances = buckets.as_dict()

    # --- 1. Forced distribution ---
    forced = min(rmd, balances["tax_deferred"])
    draws["tax_deferred"] = forced
    balances["tax_deferred"] -= forced
    remaining = max(0.0, gross - forced)

    # --- 2. Tax-efficient order for the rest ---
    for name in WITHDRAWAL_ORDER:
        if remaining <= 0:
            break
        amount = min(balances[name], remaining)
        draws[name] += amount
        balances[name] -= amount
        remaining -= amount

    return draws


def _evaluate(
    gross: float,
    buckets: AssetBuckets,
    rmd: float,
    social_security: float,
    pension_income: float,
    age: float,
    spouse_age: Optional[float],
    state: str,
    filing_status: str,
) -> Dict:
    """Taxes and net cash for one candidate gross withdrawal."""
    draws = allocate_withdrawal(gross, buckets, rmd)
    drawn = sum(draws.values())

    ordinary = pension_income + draws["tax_deferred"]
    gains = draws["capital_gains"] * ASSUMED_GAIN_FRACTION

    tax = calculate_combined_tax_rate(
        ordinary_income=ordinary,
        capital_gains=gains,
        social_security_benefit=social_security,
        filing_status=filing_status,
        state=state,
        age=age,
        spouse_age=spouse_age,
        retirement_income=ordinary,
    )
    return {
        "draws": draws,
        "drawn": drawn,
        "tax": tax,
        "net": drawn - tax["total_tax"],
    }


def _build_result(gross_target: float, target_net: float, evaluation: Dict, buckets: AssetBuckets,
                  rmd: float, filing_status: str, age: float) -> WithdrawalResult:
    tax = evaluation["tax"]
    draws = evaluation["draws"]
    net = evaluation["net"]

    remaining = buckets.withdraw(**draws)
    reinvested = 0.0
    # An RMD larger than the need still leaves the account; the after-tax excess is reinvested
    if net > target_net and draws["tax_deferred"] > 0 and gross_target <= rmd + 1e-9:
        reinvested = net - target_net
        remaining = remaining.add(cash_equivalents=reinvested)

    irmaa = calculate_irmaa(tax["agi"], filing_status, age)
    return WithdrawalResult(
        gross_withdrawal=evaluation["drawn"],
        net_after_taxes=net,
        total_taxes=tax["total_tax"],
        federal_tax=tax["federal_tax"],
        state_tax=tax["state_tax"],
        capital_gains_tax=tax["capital_gains_tax"],
        taxable_ss=tax["taxable_ss"],
        modified_agi=tax["agi"],
        irmaa_surcharge=irmaa.annual_surcharge,
        required_rmd=rmd,
        reinvested=reinvested,
        shortfall=max(0.0, target_net - net) if remaining.total_assets <= 1e-6 else 0.0,
        marginal_rate=tax["marginal_rate"],
        draws=draws,
        buckets=remaining,
    )


def solve_withdrawal(
    target_net: float,
    buckets: AssetBuckets,
    age: float,
    social_security: float = 0.0,
    pension_income: float = 0.0,
    spouse_age: Optional[float] = None,
    state: str = "FL",
    filing_status: str = "single",
    birth_year: Optional[int] = None,
    rmd_divisor: Optional[float] = None,
    max_iterations: int = MAX_SOLVER_ITERATIONS,
    tolerance: float = CONVERGENCE_TOLERANCE,
) -> SolverOutcome:
    """
    Gross withdrawal whose after-tax amount covers `target_net`.

    Taxes include those owed on guaranteed income (Social Security and
    pensions), so a zero spending need can still require a withdrawal.
    The gross amount is floored at the RMD; any after-tax surplus the RMD
    forces out is reinvested in cash equivalents.

    Returns
    -------
    Converged | MaxIterationsReached
        Tagged outcome; after the iteration cap the best estimate is returned
        instead of raising.
    """
    target_net = max(0.0, target_net)
    rmd = min(calculate_rmd(buckets.tax_deferred, age, birth_year, rmd_divisor), buckets.tax_deferred)

    def evaluate(gross: float) -> Dict:
        return _evaluate(gross, buckets, rmd, social_security, pension_income,
                         age, spouse_age, state, filing_status)

    # --- 1. Initial guess with a tax buffer ---
    base_tax = evaluate(0.0)["tax"]["total_tax"] if (social_security or pension_income) else 0.0
    gross = max(target_net, rmd, base_tax) * INITIAL_TAX_BUFFER
    available = buckets.total_assets

    evaluated_gross, evaluation = gross, evaluate(gross)
    for iteration in range(1, max_iterations + 1):
        evaluated_gross, evaluation = gross, evaluate(gross)
        diff = target_net - evaluation["net"]

        # --- 2. Stop conditions ---
        if abs(diff) < tolerance:
            return Converged(_build_result(gross, target_net, evaluation, buckets, rmd, filing_status, age), iteration)
        if diff < 0 and gross <= rmd:
            # The RMD alone already covers the need
            return Converged(_build_result(gross, target_net, evaluation, buckets, rmd, filing_status, age), iteration)
        if diff > 0 and gross >= available:
            # Every pool is empty; the caller sees the shortfall
            return Converged(_build_result(gross, target_net, evaluation, buckets, rmd, filing_status, age), iteration)

        # --- 3. Damped step toward the target ---
        if gross <= 0:
            gross = abs(diff)
        elif diff > 0:
            gross *= 1.0 + min(MAX_STEP_UP, abs(diff) / gross)
        else:
            gross *= 1.0 - min(MAX_STEP_DOWN, abs(diff) / gross)
        gross = min(gross, available)

    logger.debug(f"Withdrawal solver hit {max_iterations} iterations (target {target_net:,.0f})")
    return MaxIterationsReached(
        _build_result(evaluated_gross, target_net, evaluation, buckets, rmd, filing_status, age),
        max_iterations,
    )


__all__ = [
    "WithdrawalResult",
    "Converged",
    "MaxIterationsReached",
    "SolverOutcome",
    "unwrap",
    "allocate_withdrawal",
    "solve_withdrawal",
    "WITHDRAWAL_ORDER",
]
