import pytest

from models import SimulationParameters


@pytest.fixture
def single_retiree() -> SimulationParameters:
    """Age 65, $1.5M split across pools, $60k spending, $30k guaranteed income."""
    return SimulationParameters(
        current_age=65,
        retirement_age=65,
        life_expectancy=93,
        tax_deferred=900_000,
        tax_free=225_000,
        capital_gains=300_000,
        cash_equivalents=75_000,
        annual_guaranteed_income=30_000,
        annual_expenses=60_000,
        annual_healthcare_costs=9_000,
    )


@pytest.fixture
def married_couple() -> SimulationParameters:
    return SimulationParameters(
        current_age=62,
        retirement_age=65,
        life_expectancy=90,
        spouse_age=60,
        spouse_life_expectancy=92,
        tax_deferred=1_200_000,
        tax_free=300_000,
        capital_gains=400_000,
        cash_equivalents=100_000,
        annual_guaranteed_income=48_000,
        annual_expenses=110_000,
        annual_savings=20_000,
        filing_status="married",
        state="CA",
    )
