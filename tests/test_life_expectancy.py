from engine.life_expectancy import (
    LifeExpectancyInputs,
    analyze_life_expectancy_distribution,
    generate_couple_life_expectancy,
    generate_life_expectancy,
)
from engine.rng import RandomSource


def test_terminal_age_stays_within_bounds():
    inputs = LifeExpectancyInputs(base_life_expectancy=93, current_age=65, sex="male")
    for seed in range(1, 500):
        age = generate_life_expectancy(inputs, RandomSource(seed))
        assert 70 <= age <= 105
        assert age >= 66


def test_old_current_age_raises_the_floor():
    inputs = LifeExpectancyInputs(base_life_expectancy=80, current_age=95)
    for seed in range(1, 100):
        assert generate_life_expectancy(inputs, RandomSource(seed)) >= 96


def test_same_seed_same_terminal_age():
    inputs = LifeExpectancyInputs(90, 60, "female", 1.0)
    assert generate_life_expectancy(inputs, RandomSource(77)) == generate_life_expectancy(inputs, RandomSource(77))


def test_sex_shift_is_three_years_between_female_and_male():
    for seed in range(1, 100):
        male = generate_life_expectancy(LifeExpectancyInputs(85, 65, "male"), RandomSource(seed))
        female = generate_life_expectancy(LifeExpectancyInputs(85, 65, "female"), RandomSource(seed))
        assert female - male == 3


def test_health_adjustment_shifts_result():
    for seed in range(1, 50):
        base = generate_life_expectancy(LifeExpectancyInputs(85, 65), RandomSource(seed))
        healthier = generate_life_expectancy(LifeExpectancyInputs(85, 65, None, 2.0), RandomSource(seed))
        assert healthier - base == 2


def test_couple_ages_are_bounded_and_reproducible():
    user = LifeExpectancyInputs(88, 66, "male")
    spouse = LifeExpectancyInputs(91, 63, "female")
    first = generate_couple_life_expectancy(user, spouse, RandomSource(5))
    second = generate_couple_life_expectancy(user, spouse, RandomSource(5))
    assert first == second
    assert all(70 <= a <= 105 for a in first)


def test_full_correlation_puts_both_in_same_band():
    inputs = LifeExpectancyInputs(85, 65)
    for seed in range(1, 100):
        a, b = generate_couple_life_expectancy(inputs, inputs, RandomSource(seed), correlation=1.0)
        assert abs(a - b) <= 5


def test_distribution_summary_is_ordered():
    summary = analyze_life_expectancy_distribution(LifeExpectancyInputs(90, 65, "female"), RandomSource(9), samples=400)
    assert summary["min"] <= summary["p10"] <= summary["p25"] <= summary["median"]
    assert summary["median"] <= summary["p75"] <= summary["p90"] <= summary["max"]
    assert 85 <= summary["mean"] <= 95
