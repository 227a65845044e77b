# engine.simulator.py

import logging
from typing import Callable, Dict, List, Optional, Tuple

from models import AssetBuckets, ScenarioResult, SimulationParameters, YearlyCashFlowRecord

# --- Configuration Imports
from config.expense_assumptions import (
    healthcare_inflation_sigma,
    irmaa_rollforward_max_age,
    survivor_living_cost_factor,
    survivor_healthcare_cost_factor,
    survivor_income_factor,
    savings_allocation,
    max_distribution_years,
    guardrail_lower_trigger,
    guardrail_upper_warning,
    guardrail_raise_trigger,
    guardrail_max_cut,
    guardrail_min_cut,
    guardrail_max_raise,
)
from config.market_assumptions import bond_mu, cash_return, expected_stock_return

from engine.life_expectancy import (
    LifeExpectancyInputs,
    generate_life_expectancy,
    generate_couple_life_expectancy,
)
from engine.market_regimes import MarketRegimeModel
from engine.mortality import MortalityProfile, simulate_survival, simulate_couples_survival
from engine.tax_engine import calculate_irmaa
from engine.withdrawal_engine import MaxIterationsReached, solve_withdrawal, unwrap
from utils.tax_utils import MEDICARE_START_AGE

logger = logging.getLogger(__name__)

TraceFn = Callable[[str, Dict], None]

PHASE_ACCUMULATING = "accumulating"
PHASE_DISTRIBUTING = "distributing"
PHASE_DEPLETED = "depleted"
PHASE_SURVIVED = "survived"

# A shortfall smaller than this is rounding, not depletion
DEPLETION_TOLERANCE = 1.0


def guardrail_factor(portfolio_change_ratio: float) -> float:
    """
    Spending multiplier from the year-over-year change in portfolio value.

    Below 85% of last year: cut to between 85% and 90% of planned spending.
    Between 85% and 95%: a smaller, proportional cut. Above 115%: raise by
    up to 10%. Otherwise spending is unchanged.
    """
    ratio = portfolio_change_ratio
    if ratio < guardrail_lower_trigger:
        return max(guardrail_max_cut, min(guardrail_min_cut, ratio))
    if ratio < guardrail_upper_warning:
        return 0.95 + (ratio - guardrail_lower_trigger) * 0.5
    if ratio > guardrail_raise_trigger:
        return min(guardrail_max_raise, 1.05 + (ratio - guardrail_raise_trigger) * 0.1)
    return 1.0


def project_retirement_portfolio(params: SimulationParameters) -> float:
    """Deterministic retirement-date balance at expected (not simulated) returns."""
    expected = (
        params.stock_allocation * expected_stock_return
        + params.bond_allocation * bond_mu
        + params.cash_allocation * cash_return
    )
    balance = params.current_retirement_assets
    for _ in range(max(0, params.retirement_age - params.current_age)):
        balance = balance * (1.0 + expected) + params.annual_savings
    return balance


class ScenarioSimulator:
    """
    Walks one realization year by year.

    Accumulating (before retirement) -> Distributing -> Depleted or Survived.
    All randomness comes from the generator passed to `run`, so the same
    generator state always reproduces the same timeline.
    """

    def __init__(
        self,
        params: SimulationParameters,
        regime_model: Optional[MarketRegimeModel] = None,
        record_years: bool = True,
        trace: Optional[TraceFn] = None,
    ):
        self.params = params
        self.regime_model = regime_model or MarketRegimeModel()
        self.record_years = record_years
        self.trace = trace

        self.years_to_retirement = max(0, params.retirement_age - params.current_age)
        self.distribution_start_age = max(params.current_age, params.retirement_age)

    # -----------------------
    # Helpers
    # -----------------------
    def _emit(self, event: str, payload: Dict) -> None:
        if self.trace is not None:
            self.trace(event, payload)

    def _spouse_age_at(self, user_age: int) -> Optional[int]:
        if not self.params.is_couple:
            return None
        return self.params.spouse_age + (user_age - self.params.current_age)

    def terminal_age(self, rng) -> int:
        """
        Stochastic end of the plan in the user's age terms.

        For a couple the plan lasts until the later of the two terminal ages.
        """
        p = self.params
        user = LifeExpectancyInputs(p.life_expectancy, p.current_age, p.gender, p.health_adjustment_years)
        if not p.is_couple:
            return generate_life_expectancy(user, rng)

        spouse = LifeExpectancyInputs(
            p.spouse_life_expectancy or p.life_expectancy,
            p.spouse_age,
            p.spouse_gender,
            p.spouse_health_adjustment_years,
        )
        user_terminal, spouse_terminal = generate_couple_life_expectancy(user, spouse, rng)
        spouse_terminal_in_user_years = spouse_terminal - p.spouse_age + p.current_age
        return max(user_terminal, spouse_terminal_in_user_years)

    def _simulate_deaths(self, age: int, user_alive: bool, spouse_alive: bool, rng) -> Tuple[bool, bool]:
        p = self.params
        user = MortalityProfile(age, p.gender, p.health_status)
        if not p.is_couple:
            return simulate_survival(user, rng) if user_alive else False, False

        spouse = MortalityProfile(self._spouse_age_at(age), p.spouse_gender, p.spouse_health_status)
        if user_alive and spouse_alive:
            return simulate_couples_survival(user, spouse, rng)
        if user_alive:
            return simulate_survival(user, rng), False
        if spouse_alive:
            return False, simulate_survival(spouse, rng)
        return False, False

    # -----------------------
    # Main loop
    # -----------------------
    def run(self, rng) -> ScenarioResult:
        p = self.params
        records: List[YearlyCashFlowRecord] = []

        # -----------------------
        # STEP 1: Horizon and starting state
        # -----------------------
        terminal_age = self.terminal_age(rng)
        distribution_years = max(0, min(terminal_age - self.distribution_start_age, max_distribution_years))

        buckets: AssetBuckets = p.starting_buckets()
        regime = self.regime_model.initial_regime(self.years_to_retirement, rng)

        living_cost = p.annual_expenses - p.healthcare_costs
        healthcare_cost = p.healthcare_costs
        social_security = p.social_security_amount
        pension = p.pension_amount
        general_index = 1.0

        years_in_bear = 0
        years_in_crisis = 0

        def inflate_one_year() -> None:
            nonlocal living_cost, healthcare_cost, social_security, pension, general_index
            hc_rate = p.healthcare_inflation_rate + healthcare_inflation_sigma * rng.normal()
            living_cost *= 1.0 + p.inflation_rate
            social_security *= 1.0 + p.inflation_rate
            pension *= 1.0 + p.inflation_rate
            general_index *= 1.0 + p.inflation_rate
            healthcare_cost *= 1.0 + max(-0.99, hc_rate)

        # -----------------------
        # STEP 2: Accumulation
        # -----------------------
        for year in range(self.years_to_retirement):
            age = p.current_age + year
            step = self.regime_model.annual_return(
                regime, p.stock_allocation, p.bond_allocation, rng, p.retirement_age - age
            )
            years_in_bear += step.regime == "bear"
            years_in_crisis += step.regime == "crisis"

            buckets = buckets.grow(step.portfolio_return).deposit(p.annual_savings, savings_allocation)
            regime = step.next_regime
            inflate_one_year()

            if self.record_years:
                records.append(YearlyCashFlowRecord(
                    year=year + 1,
                    age=age,
                    phase=PHASE_ACCUMULATING,
                    portfolio_balance=buckets.total_assets,
                    guaranteed_income=0.0,
                    gross_withdrawal=-p.annual_savings,
                    net_cash_flow=p.annual_savings,
                    taxes=0.0,
                    irmaa_surcharge=0.0,
                    market_regime=step.regime,
                    portfolio_return=step.portfolio_return,
                ))

        # -----------------------
        # STEP 3: Distribution
        # -----------------------
        retirement_balance = buckets.total_assets
        retirement_index = general_index
        previous_balance = None

        user_alive = True
        spouse_alive = p.is_couple
        survivor_applied = False

        total_taxes = 0.0
        total_irmaa = 0.0
        gross_income = 0.0
        irmaa_years = 0
        unconverged_years = 0
        pending_irmaa = 0.0
        depletion_year: Optional[int] = None

        for dist_year in range(distribution_years):
            age = self.distribution_start_age + dist_year
            spouse_age = self._spouse_age_at(age)
            anyone_alive = user_alive or spouse_alive
            if dist_year > 0:
                inflate_one_year()

            # --- 1. Market return lands before the withdrawal ---
            step = self.regime_model.annual_return(
                regime, p.stock_allocation, p.bond_allocation, rng, -dist_year
            )
            years_in_bear += step.regime == "bear"
            years_in_crisis += step.regime == "crisis"
            buckets = buckets.grow(step.portfolio_return)
            regime = step.next_regime

            # --- 2. Spending need ---
            guaranteed_income = social_security + pension if anyone_alive else 0.0
            healthcare_need = healthcare_cost + pending_irmaa
            pending_irmaa = 0.0
            expenses = living_cost + healthcare_need if anyone_alive else 0.0

            if not anyone_alive:
                net_need = 0.0
            elif p.withdrawal_rate is not None:
                net_need = p.withdrawal_rate * retirement_balance * (general_index / retirement_index)
            else:
                net_need = max(0.0, expenses - guaranteed_income)

            if p.use_guardrails and previous_balance and net_need > 0:
                net_need *= guardrail_factor(buckets.total_assets / previous_balance)
            previous_balance = buckets.total_assets

            # --- 3. Withdrawal and taxes ---
            taxes = 0.0
            gross = 0.0
            net_withdrawal = 0.0
            irmaa = 0.0
            rmd = 0.0
            converged = True
            shortfall = 0.0

            if anyone_alive:
                tax_age = age if user_alive else spouse_age
                filing_status = p.filing_status
                if filing_status == "married" and not (user_alive and spouse_alive):
                    filing_status = "single"

                outcome = solve_withdrawal(
                    net_need,
                    buckets,
                    age=tax_age,
                    social_security=social_security,
                    pension_income=pension,
                    spouse_age=spouse_age if (user_alive and spouse_alive) else None,
                    state=p.state,
                    filing_status=filing_status,
                    birth_year=p.birth_year,
                )
                result = unwrap(outcome)
                if isinstance(outcome, MaxIterationsReached):
                    converged = False
                    unconverged_years += 1
                    self._emit("solver.max_iterations", {"age": age, "target": net_need})

                buckets = result.buckets
                taxes = result.total_taxes
                gross = result.gross_withdrawal
                net_withdrawal = result.net_after_taxes - result.reinvested
                rmd = result.required_rmd
                shortfall = result.shortfall

                # IRMAA is charged per covered person, off this year's MAGI
                covered = sum(
                    1 for alive, a in ((user_alive, age), (spouse_alive, spouse_age))
                    if alive and a is not None and a >= MEDICARE_START_AGE
                )
                if covered:
                    per_person = calculate_irmaa(result.modified_agi, filing_status).annual_surcharge
                    irmaa = per_person * covered
                if irmaa > 0:
                    irmaa_years += 1
                    total_irmaa += irmaa
                    if age < irmaa_rollforward_max_age:
                        pending_irmaa = irmaa

                total_taxes += taxes
                gross_income += gross + guaranteed_income

            if self.record_years:
                records.append(YearlyCashFlowRecord(
                    year=self.years_to_retirement + dist_year + 1,
                    age=age,
                    phase=PHASE_DISTRIBUTING,
                    portfolio_balance=buckets.total_assets,
                    guaranteed_income=guaranteed_income,
                    gross_withdrawal=gross,
                    net_cash_flow=guaranteed_income + net_withdrawal - expenses,
                    taxes=taxes,
                    irmaa_surcharge=irmaa,
                    market_regime=step.regime,
                    portfolio_return=step.portfolio_return,
                    required_minimum_distribution=rmd,
                    converged=converged,
                ))

            # --- 4. Depletion ---
            if shortfall > DEPLETION_TOLERANCE or (net_need > 0 and buckets.total_assets <= 0):
                depletion_year = self.years_to_retirement + dist_year + 1
                self._emit("scenario.depleted", {"age": age, "year": depletion_year})
                break

            # --- 5. Mortality and survivor adjustments ---
            if anyone_alive:
                user_alive, spouse_alive = self._simulate_deaths(age, user_alive, spouse_alive, rng)
                if p.is_couple and (user_alive != spouse_alive) and not survivor_applied:
                    living_cost *= survivor_living_cost_factor
                    healthcare_cost *= survivor_healthcare_cost_factor
                    social_security *= survivor_income_factor
                    pension *= survivor_income_factor
                    survivor_applied = True
                if not (user_alive or spouse_alive):
                    self._emit("scenario.household_deceased", {"age": age})

        # -----------------------
        # STEP 4: Outcome
        # -----------------------
        ending_balance = buckets.total_assets
        success = depletion_year is None
        return ScenarioResult(
            success=success,
            ending_balance=ending_balance,
            depletion_year=depletion_year,
            total_taxes=total_taxes,
            total_irmaa=total_irmaa,
            terminal_age=terminal_age,
            outcome=PHASE_SURVIVED if success else PHASE_DEPLETED,
            years_in_bear=years_in_bear,
            years_in_crisis=years_in_crisis,
            gross_income=gross_income,
            irmaa_years=irmaa_years,
            unconverged_years=unconverged_years,
            legacy_met=success and ending_balance >= p.legacy_goal,
            yearly_records=records,
        )


__all__ = [
    "ScenarioSimulator",
    "guardrail_factor",
    "project_retirement_portfolio",
    "PHASE_ACCUMULATING",
    "PHASE_DISTRIBUTING",
    "PHASE_DEPLETED",
    "PHASE_SURVIVED",
]
