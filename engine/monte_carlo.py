# engine/monte_carlo.py

"""
Monte Carlo aggregation over independent realizations.

Realization i always draws from derive_rng(RandomSource(seed), "realization", i),
so the result of a run depends only on (params, iterations, seed), never on
the order in which realizations execute or on how many workers run them.
"""

import logging
import multiprocessing as mp
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from errors import InvalidParameterError, RetirementEngineError
from models import AggregateResult, ScenarioResult, SimulationParameters
from engine.rng import RandomSource, derive_rng
from engine.simulator import PHASE_DEPLETED, ScenarioSimulator, project_retirement_portfolio

logger = logging.getLogger(__name__)

TraceFn = Callable[[str, Dict], None]

PERCENTILES = (10, 25, 50, 75, 90)

# Safe-withdrawal-rate search
SWR_TARGET_SUCCESS = 0.90
SWR_LOW = 0.0
SWR_HIGH = 0.10
SWR_COARSE_BATCH = 200
SWR_COARSE_STEPS = 10
SWR_REFINE_WINDOW = 0.0075
SWR_PRECISION = 0.0005


# =============================================================================
# ONE REALIZATION
# =============================================================================

def realization_rng(seed: int, index: int) -> RandomSource:
    return derive_rng(RandomSource(seed), "realization", index)


def _failed_realization(params: SimulationParameters) -> ScenarioResult:
    return ScenarioResult(
        success=False,
        ending_balance=0.0,
        depletion_year=0,
        total_taxes=0.0,
        total_irmaa=0.0,
        terminal_age=params.current_age,
        outcome=PHASE_DEPLETED,
    )


def run_realization(params: SimulationParameters, seed: int, index: int,
                    record_years: bool = False, trace: Optional[TraceFn] = None) -> ScenarioResult:
    """
    One realization. An arithmetic failure inside it is logged and counted as
    a depletion so the batch keeps exactly `iterations` outcomes; any other
    error propagates.
    """
    try:
        simulator = ScenarioSimulator(params, record_years=record_years, trace=trace)
        return simulator.run(realization_rng(seed, index))
    except (ArithmeticError, RetirementEngineError) as exc:
        logger.warning(f"Realization {index} failed ({exc!r}); recorded as depleted", exc_info=True)
        return _failed_realization(params)


def _realization_worker(args: Tuple[SimulationParameters, int, int, bool]) -> ScenarioResult:
    params, seed, index, record_years = args
    return run_realization(params, seed, index, record_years)


def percentile_from_sorted(values: Sequence[float], p: float) -> float:
    """sorted[floor(p/100 * (N-1))]; no interpolation."""
    if len(values) == 0:
        return 0.0
    index = int(np.floor(p / 100.0 * (len(values) - 1)))
    return float(values[index])


# =============================================================================
# AGGREGATOR
# =============================================================================

class MonteCarloAggregator:
    """
    Runs N realizations of one plan and summarises them.

    Parameters
    ----------
    params : SimulationParameters
        Validated before any realization runs.
    iterations : int
        Number of realizations.
    seed : int
        Root seed; realization i uses its own derived stream.
    workers : int
        >1 spreads realizations over a multiprocessing pool. The trace
        callback only sees per-realization events when workers == 1.
    trace : callable(event, payload), optional
        Structured diagnostics hook. The engine never prints.
    """

    def __init__(
        self,
        params: SimulationParameters,
        iterations: int = 1000,
        seed: int = 12345,
        workers: int = 1,
        trace: Optional[TraceFn] = None,
    ):
        if iterations <= 0:
            raise InvalidParameterError("iterations", iterations, "must be positive")
        self.params = params.validate()
        self.iterations = int(iterations)
        self.seed = int(seed)
        self.workers = max(1, int(workers))
        self.trace = trace

    def _emit(self, event: str, payload: Dict) -> None:
        if self.trace is not None:
            self.trace(event, payload)

    # -----------------------
    # Batches
    # -----------------------
    def run_batch(self, params: SimulationParameters, iterations: int,
                  sample_index: Optional[int] = None) -> List[ScenarioResult]:
        """Realizations 0..iterations-1; only `sample_index` keeps its yearly records."""
        self._emit("batch.start", {"iterations": iterations, "withdrawal_rate": params.withdrawal_rate})

        if self.workers > 1 and iterations > 1:
            jobs = [(params, self.seed, i, i == sample_index) for i in range(iterations)]
            with mp.Pool(self.workers) as pool:
                results = pool.map(_realization_worker, jobs, chunksize=max(1, iterations // (self.workers * 4)))
        else:
            results = [
                run_realization(params, self.seed, i, i == sample_index, self.trace)
                for i in range(iterations)
            ]

        successes = sum(r.success for r in results)
        self._emit("batch.complete", {"iterations": iterations, "successes": successes})
        return results

    def success_rate(self, withdrawal_rate: float, iterations: int) -> float:
        results = self.run_batch(self.params.with_overrides(withdrawal_rate=withdrawal_rate), iterations)
        return sum(r.success for r in results) / iterations

    # -----------------------
    # Safe withdrawal rate
    # -----------------------
    def safe_withdrawal_rate(self, target: float = SWR_TARGET_SUCCESS) -> float:
        """
        Highest initial withdrawal rate (share of the retirement-date portfolio,
        inflation-adjusted thereafter) whose success probability meets `target`.

        A coarse bisection over [0, 10%] uses small batches; the answer is then
        refined within a narrow window using the full batch and seed, so
        re-running the plan at the returned rate reproduces the final check.
        """
        coarse_n = min(SWR_COARSE_BATCH, self.iterations)
        low, high = SWR_LOW, SWR_HIGH

        # --- 1. Coarse search ---
        for _ in range(SWR_COARSE_STEPS):
            mid = (low + high) / 2.0
            if self.success_rate(mid, coarse_n) >= target:
                low = mid
            else:
                high = mid

        # --- 2. Bracket with the full batch ---
        full_n = self.iterations
        low_f = max(SWR_LOW, low - SWR_REFINE_WINDOW)
        high_f = min(SWR_HIGH, low + SWR_REFINE_WINDOW)

        if self.success_rate(low_f, full_n) < target:
            low_f = SWR_LOW
            if self.success_rate(low_f, full_n) < target:
                return SWR_LOW
        if self.success_rate(high_f, full_n) >= target:
            if high_f >= SWR_HIGH:
                return SWR_HIGH
            high_f = SWR_HIGH
            if self.success_rate(high_f, full_n) >= target:
                return SWR_HIGH

        # --- 3. Refine ---
        while high_f - low_f > SWR_PRECISION:
            mid = (low_f + high_f) / 2.0
            if self.success_rate(mid, full_n) >= target:
                low_f = mid
            else:
                high_f = mid

        self._emit("swr.result", {"rate": low_f, "target": target})
        return low_f

    # -----------------------
    # Aggregate
    # -----------------------
    def summarize(self, results: List[ScenarioResult], safe_withdrawal_rate: Optional[float],
                  include_sample: bool = True) -> AggregateResult:
        n = len(results)
        balances = np.sort(np.array([r.ending_balance for r in results], dtype=float))
        successes = sum(r.success for r in results)

        depletion_years = [r.depletion_year for r in results if r.depletion_year is not None]
        taxed = [r.effective_tax_rate for r in results if r.gross_income > 0]

        pct = {p: percentile_from_sorted(balances, p) for p in PERCENTILES}
        return AggregateResult(
            iterations=n,
            seed=self.seed,
            probability_of_success=successes / n,
            percentile_10=pct[10],
            percentile_25=pct[25],
            percentile_50=pct[50],
            percentile_75=pct[75],
            percentile_90=pct[90],
            worst_case_ending_balance=float(balances[0]),
            safe_withdrawal_rate=safe_withdrawal_rate,
            average_effective_tax_rate=float(np.mean(taxed)) if taxed else 0.0,
            irmaa_incidence=sum(r.irmaa_years > 0 for r in results) / n,
            average_years_in_bear=float(np.mean([r.years_in_bear for r in results])),
            average_years_in_crisis=float(np.mean([r.years_in_crisis for r in results])),
            successful_scenarios=successes,
            failed_scenarios=n - successes,
            average_depletion_year=float(np.mean(depletion_years)) if depletion_years else None,
            legacy_goal_probability=sum(r.legacy_met for r in results) / n,
            convergence_failure_rate=sum(r.unconverged_years > 0 for r in results) / n,
            current_retirement_assets=self.params.current_retirement_assets,
            projected_retirement_portfolio=project_retirement_portfolio(self.params),
            sample_yearly_records=list(results[0].yearly_records) if include_sample and results else [],
        )

    def run(self, include_sample: bool = True, swr_search: bool = True) -> AggregateResult:
        logger.info(f"Running {self.iterations:,} realizations (seed={self.seed}, workers={self.workers})")
        results = self.run_batch(self.params, self.iterations, sample_index=0 if include_sample else None)

        swr = self.safe_withdrawal_rate() if swr_search else None
        aggregate = self.summarize(results, swr, include_sample)
        logger.info(f"Probability of success: {aggregate.probability_of_success:.1%}")
        return aggregate


# =============================================================================
# ENTRY POINT
# =============================================================================

def run_monte_carlo(
    params: SimulationParameters,
    iterations: int = 1000,
    seed: int = 12345,
    workers: int = 1,
    trace: Optional[TraceFn] = None,
    include_sample: bool = True,
    swr_search: bool = True,
) -> AggregateResult:
    """
    Evaluate one retirement plan.

    Raises InvalidParameterError before any realization runs when `params`
    is invalid; every other failure is folded into the statistics.
    """
    aggregator = MonteCarloAggregator(params, iterations, seed, workers, trace)
    return aggregator.run(include_sample=include_sample, swr_search=swr_search)


__all__ = [
    "MonteCarloAggregator",
    "run_monte_carlo",
    "run_realization",
    "realization_rng",
    "percentile_from_sorted",
]
