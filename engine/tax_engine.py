"""
U.S. tax and Medicare premium calculator for retirement planning.
It contains the final tax formulas (Social Security taxation, IRMAA, RMDs,
federal and state income tax, combined rates), relying entirely on the 2024
constants provided by utils.tax_utils. Every function here is pure.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
import numpy as np
import logging

# Configure logging for state tax messages
logger = logging.getLogger(__name__)

from engine.rmd_tables import get_rmd_factor
from utils.tax_utils import (
    ORDINARY_BRACKETS_2024,
    CAPGAINS_BRACKETS_2024,
    STANDARD_DEDUCTION_2024,
    EXTRA_STD_DEDUCTION_65,
    NIIT_RATE,
    NIIT_THRESHOLD_2024,
    SS_TAX_THRESHOLDS,
    SS_FIRST_TIER_RATE,
    SS_SECOND_TIER_RATE,
    BASE_PART_B_2024,
    IRMAA_TIERS_2024,
    MEDICARE_START_AGE,
    SS_TAXING_STATES,
    get_state_config,
    state_filing_key,
    TaxFilingStatus,
)

_warned_states = set()


@dataclass(frozen=True)
class SocialSecurityTaxation:
    taxable_amount: float
    taxable_percentage: float
    provisional_income: float


@dataclass(frozen=True)
class IrmaaResult:
    """Per-person Medicare premiums; `annual_surcharge` is what exceeds the base Part B premium."""
    monthly_part_b: float
    monthly_part_d: float
    annual_surcharge: float
    tier: int


# --- 1. Internal Helper Functions ---

def _normalize_status(filing_status: str) -> str:
    return filing_status if filing_status in ORDINARY_BRACKETS_2024 else "single"


def _apply_brackets(amount: float, brackets: List[Tuple[float, float, float]]) -> Tuple[float, float]:
    """
    Apply a set of tax brackets to a given amount.

    Returns:
        (total tax owed, marginal rate of the last dollar)
    """
    tax = 0.0
    marginal = 0.0
    for lower, upper, rate in brackets:
        if amount <= lower:
            break
        taxable = min(amount, upper) - lower
        tax += taxable * rate
        marginal = rate
        if amount <= upper:
            break
    return tax, marginal


def _stacked_preferential_tax(ordinary_base: float, preferential: float,
                              brackets: List[Tuple[float, float, float]]) -> float:
    """LTCG tax with gains stacked on top of ordinary taxable income."""
    tax = 0.0
    top = ordinary_base + preferential
    for lower, upper, rate in brackets:
        start = max(lower, ordinary_base)
        end = min(upper, top) if np.isfinite(upper) else top
        if end > start:
            tax += (end - start) * rate
    return tax


# --- 2. Social Security, IRMAA and RMDs ---

def taxable_social_security(
    gross_benefit: float,
    other_income: float,
    filing_status: TaxFilingStatus,
) -> SocialSecurityTaxation:
    """
    Taxable portion of Social Security benefits.

    Provisional income is other income plus half the benefit. Up to 50% of the
    benefit is taxable between the two thresholds and up to 85% above the
    second; the taxable amount never exceeds 0.85 x benefit.
    """
    if gross_benefit <= 0:
        return SocialSecurityTaxation(0.0, 0.0, 0.0)

    provisional = other_income + gross_benefit * 0.5
    first, second = SS_TAX_THRESHOLDS[_normalize_status(filing_status)]

    if provisional <= first:
        taxable = 0.0
    elif provisional <= second:
        taxable = min((provisional - first) * SS_FIRST_TIER_RATE, gross_benefit * SS_FIRST_TIER_RATE)
    else:
        first_tier = (second - first) * SS_FIRST_TIER_RATE
        second_tier = (provisional - second) * SS_SECOND_TIER_RATE
        taxable = min(first_tier + second_tier, gross_benefit * SS_SECOND_TIER_RATE)

    taxable = max(0.0, taxable)
    return SocialSecurityTaxation(
        taxable_amount=taxable,
        taxable_percentage=min(SS_SECOND_TIER_RATE, taxable / gross_benefit),
        provisional_income=provisional,
    )


def calculate_irmaa(modified_agi: float, filing_status: TaxFilingStatus, age: Optional[float] = None) -> IrmaaResult:
    """
    Medicare Part B / Part D premiums for one person from MAGI.

    annual_surcharge = (monthly Part B total - base premium + Part D add-on) x 12.
    Head of household uses the single table. Zero below Medicare age.
    """
    if age is not None and age < MEDICARE_START_AGE:
        return IrmaaResult(0.0, 0.0, 0.0, 0)

    table = IRMAA_TIERS_2024["married" if filing_status == "married" else "single"]
    tier_index = len(table) - 1
    for i, (upper, _, _) in enumerate(table):
        if modified_agi < upper:
            tier_index = i
            break

    _, part_b, part_d = table[tier_index]
    surcharge = (part_b - BASE_PART_B_2024 + part_d) * 12
    return IrmaaResult(
        monthly_part_b=part_b,
        monthly_part_d=part_d,
        annual_surcharge=round(surcharge, 2),
        tier=tier_index,
    )


def calculate_rmd(
    tax_deferred_balance: float,
    age: float,
    birth_year: Optional[int] = None,
    divisor: Optional[float] = None,
) -> float:
    """
    Required minimum distribution: balance / IRS divisor once RMDs have started.

    A caller-supplied `divisor` overrides the Uniform Lifetime Table.
    """
    if tax_deferred_balance <= 0:
        return 0.0
    factor = divisor if divisor is not None else get_rmd_factor(int(age), birth_year)
    if factor <= 0:
        return 0.0
    return tax_deferred_balance / factor


# --- 3. Federal and State Income Tax ---

def calculate_federal_tax(
    ordinary_income: float,
    capital_gains: float,
    taxable_ss: float,
    filing_status: TaxFilingStatus,
    age: Optional[float] = None,
    spouse_age: Optional[float] = None,
) -> Dict[str, float]:
    """
    Federal income tax on ordinary income, taxable Social Security and
    long-term gains, with the 65+ standard deduction and NIIT.
    """
    status = _normalize_status(filing_status)

    deduction = STANDARD_DEDUCTION_2024[status]
    seniors = 0
    if age is not None and age >= 65:
        seniors += 1
    if status == "married" and spouse_age is not None and spouse_age >= 65:
        seniors += 1
    deduction += seniors * EXTRA_STD_DEDUCTION_65[status]

    agi = max(0.0, ordinary_income) + max(0.0, capital_gains) + max(0.0, taxable_ss)
    taxable_income = max(0.0, agi - deduction)
    preferential = min(max(0.0, capital_gains), taxable_income)
    ordinary_base = taxable_income - preferential

    ordinary_tax, marginal = _apply_brackets(ordinary_base, ORDINARY_BRACKETS_2024[status])
    gains_tax = _stacked_preferential_tax(ordinary_base, preferential, CAPGAINS_BRACKETS_2024[status])

    niit = min(max(0.0, agi - NIIT_THRESHOLD_2024[status]), max(0.0, capital_gains)) * NIIT_RATE

    return {
        "agi": agi,
        "taxable_income": taxable_income,
        "ordinary_tax": ordinary_tax,
        "capital_gains_tax": gains_tax,
        "niit": niit,
        "federal_tax": ordinary_tax + gains_tax + niit,
        "marginal_rate": marginal,
    }


def state_taxable_social_security(gross_benefit: float, other_income: float,
                                  filing_status: TaxFilingStatus, state: str) -> float:
    """Most states exempt Social Security; the taxing ones follow the federal amount."""
    if gross_benefit <= 0 or (state or "").strip().upper() not in SS_TAXING_STATES:
        return 0.0
    return taxable_social_security(gross_benefit, other_income, filing_status).taxable_amount


def calculate_state_tax(
    income: float,
    retirement_income: float,
    social_security_benefit: float,
    filing_status: TaxFilingStatus,
    state: str,
) -> Dict[str, float]:
    """
    State income tax.

    `income` is state gross income excluding Social Security; `retirement_income`
    is the pension / IRA portion of it that may qualify for a state exemption.
    Unsupported states are taxed at zero with a single warning per state.
    """
    config = get_state_config(state)
    if config is None:
        code = (state or "").strip().upper()
        if code not in _warned_states:
            _warned_states.add(code)
            logger.warning(
                f"State Tax Calculations Not Available for '{code}'. "
                "Defaulting to $0 state income taxes for this simulation."
            )
        return {"state_tax": 0.0, "effective_rate": 0.0, "marginal_rate": 0.0}

    if not config["has_income_tax"]:
        return {"state_tax": 0.0, "effective_rate": 0.0, "marginal_rate": 0.0}

    key = state_filing_key(filing_status)
    taxable = income + state_taxable_social_security(social_security_benefit, income, filing_status, state)
    exemption = config.get("pension_exemption", 0.0)
    if exemption > 0 and retirement_income > 0:
        taxable -= min(retirement_income, exemption)
    taxable = max(0.0, taxable - config["std_deduction"][key])

    if taxable <= 0:
        return {"state_tax": 0.0, "effective_rate": 0.0, "marginal_rate": 0.0}

    tax, marginal = _apply_brackets(taxable, config["brackets"][key])
    return {
        "state_tax": tax,
        "effective_rate": tax / income if income > 0 else 0.0,
        "marginal_rate": marginal,
    }


# --- 4. Main Orchestrator Function ---

def calculate_combined_tax_rate(
    ordinary_income: float,
    capital_gains: float,
    social_security_benefit: float,
    filing_status: TaxFilingStatus,
    state: str,
    age: Optional[float] = None,
    spouse_age: Optional[float] = None,
    retirement_income: float = 0.0,
) -> Dict[str, float]:
    """
    Federal plus state tax for one year of retirement income.

    Args:
        ordinary_income: pensions, tax-deferred withdrawals, other ordinary income.
        capital_gains: realized long-term gains.
        social_security_benefit: gross benefit (taxable share is derived here).
        retirement_income: portion of ordinary income eligible for state
            pension / retirement exemptions.

    Returns:
        dict with federal_tax, state_tax, total_tax, taxable_ss, effective_rate
        (total tax over gross cash income) and marginal_rate (federal + state).
    """
    ss = taxable_social_security(social_security_benefit, ordinary_income + capital_gains, filing_status)
    federal = calculate_federal_tax(ordinary_income, capital_gains, ss.taxable_amount, filing_status, age, spouse_age)
    state_result = calculate_state_tax(
        ordinary_income + capital_gains,
        retirement_income,
        social_security_benefit,
        filing_status,
        state,
    )

    total_tax = federal["federal_tax"] + state_result["state_tax"]
    gross_income = ordinary_income + capital_gains + social_security_benefit
    return {
        "taxable_ss": ss.taxable_amount,
        "provisional_income": ss.provisional_income,
        "agi": federal["agi"],
        "federal_tax": federal["federal_tax"],
        "capital_gains_tax": federal["capital_gains_tax"],
        "state_tax": state_result["state_tax"],
        "total_tax": total_tax,
        "effective_rate": total_tax / gross_income if gross_income > 0 else 0.0,
        "marginal_rate": federal["marginal_rate"] + state_result["marginal_rate"],
    }


__all__ = [
    "SocialSecurityTaxation",
    "IrmaaResult",
    "taxable_social_security",
    "calculate_irmaa",
    "calculate_rmd",
    "calculate_federal_tax",
    "calculate_state_tax",
    "calculate_combined_tax_rate",
]
