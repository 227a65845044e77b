# config/expense_assumptions.py
# These are **reasonable defaults**; callers can override them per profile

# Healthcare
healthcare_inflation_sigma = 0.02       # year-to-year noise on healthcare inflation
default_healthcare_share = 0.15         # share of total expenses when none is given
irmaa_rollforward_max_age = 85          # surcharges stop carrying into next year's cost after this age

# Survivor adjustments (applied once, on the first death in a couple)
survivor_living_cost_factor = 0.75
survivor_healthcare_cost_factor = 0.85
survivor_income_factor = 0.60

# Where pre-retirement savings land each year
savings_allocation = {
    "tax_deferred": 0.60,
    "tax_free": 0.15,
    "capital_gains": 0.20,
    "cash_equivalents": 0.05,
}

# Hard stop on the distribution phase
max_distribution_years = 60

# Guardrails withdrawal strategy (Guyton-Klinger style)
guardrail_lower_trigger = 0.85
guardrail_upper_warning = 0.95
guardrail_raise_trigger = 1.15
guardrail_max_cut = 0.85
guardrail_min_cut = 0.90
guardrail_max_raise = 1.10
