import math

import pytest

from errors import InvalidParameterError
from models import AggregateResult, AssetBuckets, YearlyCashFlowRecord


def test_buckets_total_is_sum_of_pools():
    b = AssetBuckets(100.0, 200.0, 300.0, 400.0)
    assert b.total_assets == 1000.0
    assert b.grow(0.10).total_assets == pytest.approx(1100.0)


def test_buckets_clamp_negative_and_nan():
    b = AssetBuckets(-5.0, math.nan, 10.0, 0.0)
    assert b.tax_deferred == 0.0
    assert b.tax_free == 0.0
    assert b.total_assets == 10.0
    assert b.withdraw(capital_gains=25.0).capital_gains == 0.0


def test_buckets_are_immutable():
    b = AssetBuckets(1.0, 1.0, 1.0, 1.0)
    b2 = b.add(cash_equivalents=9.0)
    assert b.cash_equivalents == 1.0
    assert b2.cash_equivalents == 10.0
    with pytest.raises(AttributeError):
        b.tax_free = 5.0


def test_deposit_follows_allocation():
    b = AssetBuckets().deposit(1000.0, {"tax_deferred": 0.7, "tax_free": 0.3})
    assert b.as_dict() == {"tax_deferred": 700.0, "tax_free": 300.0, "capital_gains": 0.0, "cash_equivalents": 0.0}


def test_derived_parameter_views(single_retiree, married_couple):
    assert single_retiree.healthcare_costs == 9_000
    assert single_retiree.social_security_amount == 30_000
    assert single_retiree.pension_amount == 0.0
    assert single_retiree.cash_allocation == pytest.approx(0.05)
    assert married_couple.is_couple
    assert married_couple.healthcare_costs == pytest.approx(110_000 * 0.15)
    split = single_retiree.with_overrides(social_security_benefit=20_000)
    assert split.pension_amount == 10_000


@pytest.mark.parametrize(
    "changes, field",
    [
        ({"current_age": 0}, "current_age"),
        ({"tax_free": -1.0}, "tax_free"),
        ({"annual_expenses": math.inf}, "annual_expenses"),
        ({"stock_allocation": 0.8, "bond_allocation": 0.3}, "bond_allocation"),
        ({"filing_status": "joint"}, "filing_status"),
        ({"gender": "other"}, "gender"),
        ({"social_security_benefit": 50_000}, "social_security_benefit"),
        ({"annual_healthcare_costs": 70_000}, "annual_healthcare_costs"),
        ({"withdrawal_rate": 1.5}, "withdrawal_rate"),
        ({"spouse_life_expectancy": 90}, "spouse_life_expectancy"),
        ({"inflation_rate": "3%"}, "inflation_rate"),
    ],
)
def test_validate_names_the_bad_field(single_retiree, changes, field):
    with pytest.raises(InvalidParameterError) as info:
        single_retiree.with_overrides(**changes).validate()
    assert info.value.field == field


def test_valid_parameters_return_self(single_retiree):
    assert single_retiree.validate() is single_retiree


def _aggregate(records):
    return AggregateResult(
        iterations=1, seed=1, probability_of_success=1.0,
        percentile_10=1.0, percentile_25=2.0, percentile_50=3.0, percentile_75=4.0, percentile_90=5.0,
        worst_case_ending_balance=0.5, safe_withdrawal_rate=None, average_effective_tax_rate=0.1,
        irmaa_incidence=0.0, average_years_in_bear=1.0, average_years_in_crisis=0.0,
        successful_scenarios=1, failed_scenarios=0, average_depletion_year=None,
        legacy_goal_probability=0.0, convergence_failure_rate=0.0,
        current_retirement_assets=10.0, projected_retirement_portfolio=10.0,
        sample_yearly_records=records,
    )


def test_empty_yearly_frame_keeps_columns():
    frame = _aggregate([]).yearly_frame()
    assert frame.empty
    assert "market_regime" in frame.columns


def test_yearly_frame_rows():
    record = YearlyCashFlowRecord(
        year=1, age=66, phase="distributing", portfolio_balance=100.0, guaranteed_income=10.0,
        gross_withdrawal=5.0, net_cash_flow=4.0, taxes=1.0, irmaa_surcharge=0.0, market_regime="normal",
    )
    frame = _aggregate([record, record]).yearly_frame()
    assert list(frame["age"]) == [66, 66]
    assert _aggregate([record]).percentiles()[50] == 3.0


def test_whole_number_float_ages_become_int(married_couple):
    params = married_couple.with_overrides(retirement_age=65.0, spouse_age=60.0).validate()
    assert params.retirement_age == 65 and isinstance(params.retirement_age, int)
    assert params.spouse_age == 60 and isinstance(params.spouse_age, int)
    assert params.current_age == 62


@pytest.mark.parametrize("field", ["current_age", "retirement_age", "life_expectancy", "spouse_age"])
def test_fractional_ages_are_rejected(married_couple, field):
    with pytest.raises(InvalidParameterError) as info:
        married_couple.with_overrides(**{field: getattr(married_couple, field) + 0.5}).validate()
    assert info.value.field == field
