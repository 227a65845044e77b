import pytest

from engine import simulator as simulator_module
from engine.rng import RandomSource
from engine.simulator import (
    PHASE_ACCUMULATING,
    PHASE_DEPLETED,
    PHASE_DISTRIBUTING,
    PHASE_SURVIVED,
    ScenarioSimulator,
    guardrail_factor,
    project_retirement_portfolio,
)
from models import SimulationParameters


def test_same_rng_state_reproduces_realization(single_retiree):
    first = ScenarioSimulator(single_retiree).run(RandomSource(101))
    second = ScenarioSimulator(single_retiree).run(RandomSource(101))
    assert first == second


def test_outcome_matches_success_flag(single_retiree):
    for seed in range(1, 30):
        result = ScenarioSimulator(single_retiree).run(RandomSource(seed))
        if result.success:
            assert result.outcome == PHASE_SURVIVED and result.depletion_year is None
        else:
            assert result.outcome == PHASE_DEPLETED and result.depletion_year is not None


def test_distribution_records_follow_horizon(single_retiree):
    sim = ScenarioSimulator(single_retiree)
    result = sim.run(RandomSource(7))
    distributing = [r for r in result.yearly_records if r.phase == PHASE_DISTRIBUTING]
    if result.success:
        assert len(distributing) == min(result.terminal_age - 65, 60)
    assert [r.age for r in distributing] == list(range(65, 65 + len(distributing)))


def test_accumulation_phase_deposits_savings(married_couple):
    result = ScenarioSimulator(married_couple).run(RandomSource(3))
    accumulating = [r for r in result.yearly_records if r.phase == PHASE_ACCUMULATING]
    assert len(accumulating) == 3
    assert all(r.gross_withdrawal == -20_000 for r in accumulating)
    assert [r.age for r in accumulating] == [62, 63, 64]


def test_rmd_floor_holds_every_year(single_retiree):
    for seed in range(1, 20):
        result = ScenarioSimulator(single_retiree).run(RandomSource(seed))
        for record in result.yearly_records:
            assert record.gross_withdrawal >= record.required_minimum_distribution - 1e-6
            if record.age < 73:
                assert record.required_minimum_distribution == 0.0


def test_balances_never_negative(married_couple):
    for seed in range(1, 15):
        result = ScenarioSimulator(married_couple).run(RandomSource(seed))
        assert result.ending_balance >= 0.0
        assert all(r.portfolio_balance >= 0.0 for r in result.yearly_records)


def test_tiny_portfolio_depletes(single_retiree):
    params = single_retiree.with_overrides(tax_deferred=0, tax_free=0, capital_gains=0, cash_equivalents=10_000)
    events = []
    result = ScenarioSimulator(params, trace=lambda e, p: events.append(e)).run(RandomSource(5))
    assert not result.success
    assert result.depletion_year == 1
    assert "scenario.depleted" in events


def test_no_spending_always_survives(single_retiree):
    params = single_retiree.with_overrides(annual_expenses=0, annual_healthcare_costs=0, annual_guaranteed_income=0)
    for seed in range(1, 10):
        result = ScenarioSimulator(params).run(RandomSource(seed))
        assert result.success
        assert result.ending_balance > 0


def test_distribution_is_capped_at_sixty_years(single_retiree):
    params = single_retiree.with_overrides(
        current_age=40, retirement_age=40, life_expectancy=105, health_adjustment_years=10,
        annual_expenses=0, annual_healthcare_costs=0, annual_guaranteed_income=0,
    )
    result = ScenarioSimulator(params).run(RandomSource(9))
    assert len(result.yearly_records) == 60


def test_record_years_off_keeps_outcome(single_retiree):
    full = ScenarioSimulator(single_retiree).run(RandomSource(12))
    lean = ScenarioSimulator(single_retiree, record_years=False).run(RandomSource(12))
    assert lean.yearly_records == []
    assert lean.ending_balance == full.ending_balance
    assert lean.success == full.success


def test_legacy_goal_never_causes_failure(single_retiree):
    base = ScenarioSimulator(single_retiree).run(RandomSource(4))
    greedy = ScenarioSimulator(single_retiree.with_overrides(legacy_goal=1e12)).run(RandomSource(4))
    assert greedy.success == base.success
    assert not greedy.legacy_met


@pytest.mark.parametrize("ratio, expected", [
    (0.70, 0.85),
    (0.86, 0.955),
    (1.00, 1.0),
    (1.20, 1.055),
    (3.00, 1.10),
])
def test_guardrail_factor(ratio, expected):
    assert guardrail_factor(ratio) == pytest.approx(expected)


def test_projection_at_expected_returns(single_retiree, married_couple):
    assert project_retirement_portfolio(single_retiree) == pytest.approx(1_500_000)
    expected = 2_000_000.0
    for _ in range(3):
        expected = expected * (1 + 0.6 * 0.07 + 0.35 * 0.04 + 0.05 * 0.02) + 20_000
    assert project_retirement_portfolio(married_couple) == pytest.approx(expected)


# --- Household events ---

class ScriptedDeaths(ScenarioSimulator):
    """Nobody dies except at the ages listed in `deaths` as (user_survives, spouse_survives)."""

    def __init__(self, params, deaths=None, **kwargs):
        super().__init__(params, **kwargs)
        self.deaths = deaths or {}

    def _simulate_deaths(self, age, user_alive, spouse_alive, rng):
        user_survives, spouse_survives = self.deaths.get(age, (True, True))
        return user_alive and user_survives, spouse_alive and spouse_survives


def capture_solver(monkeypatch):
    calls = []
    real = simulator_module.solve_withdrawal

    def capture(target_net, buckets, **kwargs):
        calls.append(dict(kwargs, target=target_net, balance=buckets.total_assets))
        return real(target_net, buckets, **kwargs)

    monkeypatch.setattr(simulator_module, "solve_withdrawal", capture)
    return calls


def couple_at_65(**overrides):
    base = dict(
        current_age=65,
        retirement_age=65,
        life_expectancy=95,
        spouse_age=65,
        spouse_life_expectancy=95,
        tax_free=800_000,
        annual_guaranteed_income=0,
        annual_expenses=50_000,
        annual_healthcare_costs=0,
        filing_status="married",
    )
    base.update(overrides)
    return SimulationParameters(**base)


def test_first_death_rescales_guaranteed_income_and_filing(monkeypatch):
    params = couple_at_65(annual_guaranteed_income=40_000, annual_expenses=60_000)
    calls = capture_solver(monkeypatch)

    baseline = ScriptedDeaths(params).run(RandomSource(21))
    calls.clear()
    widowed = ScriptedDeaths(params, deaths={67: (False, True)}).run(RandomSource(21))

    assert len(widowed.yearly_records) >= 6
    for k in range(6):
        ratio = widowed.yearly_records[k].guaranteed_income / baseline.yearly_records[k].guaranteed_income
        assert ratio == pytest.approx(1.0 if k <= 2 else 0.60)
        assert calls[k]["filing_status"] == ("married" if k <= 2 else "single")
        assert (calls[k]["spouse_age"] is None) == (k > 2)


@pytest.mark.parametrize(
    "expenses, healthcare, factor",
    [(50_000, 0, 0.75), (20_000, 20_000, 0.85)],
)
def test_first_death_rescales_spending(monkeypatch, expenses, healthcare, factor):
    params = couple_at_65(annual_expenses=expenses, annual_healthcare_costs=healthcare)
    calls = capture_solver(monkeypatch)

    ScriptedDeaths(params).run(RandomSource(5))
    baseline = [c["target"] for c in calls]
    calls.clear()
    ScriptedDeaths(params, deaths={67: (True, False)}).run(RandomSource(5))
    widowed = [c["target"] for c in calls]

    assert min(len(baseline), len(widowed)) >= 6
    for k in range(6):
        assert widowed[k] / baseline[k] == pytest.approx(1.0 if k <= 2 else factor)


def test_markets_keep_running_after_both_deaths():
    params = couple_at_65(annual_guaranteed_income=40_000, annual_expenses=60_000)
    events = []
    sim = ScriptedDeaths(params, deaths={67: (False, False)}, trace=lambda e, p: events.append((e, p)))
    result = sim.run(RandomSource(9))

    records = result.yearly_records
    assert result.success
    assert len(records) == min(result.terminal_age - 65, 60)
    assert [p for e, p in events if e == "scenario.household_deceased"] == [{"age": 67}]
    for prev, rec in zip(records[2:], records[3:]):
        assert rec.guaranteed_income == 0.0
        assert rec.gross_withdrawal == 0.0
        assert rec.taxes == 0.0
        assert rec.portfolio_balance == pytest.approx(prev.portfolio_balance * (1.0 + rec.portfolio_return))


def test_irmaa_rolls_into_next_year_until_85(monkeypatch):
    params = SimulationParameters(
        current_age=80,
        retirement_age=80,
        life_expectancy=100,
        tax_deferred=10_000_000,
        annual_expenses=300_000,
        annual_healthcare_costs=0,
    )
    calls = capture_solver(monkeypatch)
    result = ScriptedDeaths(params).run(RandomSource(4))
    records = result.yearly_records

    assert [r.age for r in records[:8]] == list(range(80, 88))
    assert all(r.irmaa_surcharge > 0 for r in records[:8])
    assert calls[0]["target"] == pytest.approx(300_000)
    for k in range(1, len(calls)):
        carried = records[k - 1].irmaa_surcharge if records[k - 1].age < 85 else 0.0
        assert calls[k]["target"] == pytest.approx(300_000 * 1.025 ** k + carried, rel=1e-9)


def test_guardrails_scale_each_years_need(monkeypatch):
    params = SimulationParameters(
        current_age=65,
        retirement_age=65,
        life_expectancy=95,
        tax_free=1_000_000,
        annual_expenses=40_000,
        annual_healthcare_costs=0,
        use_guardrails=True,
    )
    calls = capture_solver(monkeypatch)
    ScriptedDeaths(params).run(RandomSource(13))

    assert calls[0]["target"] == pytest.approx(40_000)
    factors = []
    for k in range(1, len(calls)):
        factor = guardrail_factor(calls[k]["balance"] / calls[k - 1]["balance"])
        factors.append(factor)
        assert calls[k]["target"] == pytest.approx(40_000 * 1.025 ** k * factor, rel=1e-9)
    assert any(f != 1.0 for f in factors)
