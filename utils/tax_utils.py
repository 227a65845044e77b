# utils/tax_utils.py
import numpy as np
from typing import List, Tuple, Dict, Literal, Any

# Define the acceptable set of filing statuses for type hinting
TaxFilingStatus = Literal["single", "married", "head_of_household"]
# All tables below are 2024 IRS / CMS / state figures

# =============================================================================
# 1. Federal Ordinary Income Tax Brackets (2024)
# =============================================================================

ORDINARY_BRACKETS_2024: Dict[TaxFilingStatus, List[Tuple[float, float, float]]] = {
    "married": [
        (0, 23_200, 0.10), (23_200, 94_300, 0.12), (94_300, 201_050, 0.22),
        (201_050, 383_900, 0.24), (383_900, 487_450, 0.32), (487_450, 731_200, 0.35),
        (731_200, np.inf, 0.37),
    ],
    "single": [
        (0, 11_600, 0.10), (11_600, 47_150, 0.12), (47_150, 100_525, 0.22),
        (100_525, 191_950, 0.24), (191_950, 243_725, 0.32), (243_725, 609_350, 0.35),
        (609_350, np.inf, 0.37),
    ],
    "head_of_household": [
        (0, 16_550, 0.10), (16_550, 63_100, 0.12), (63_100, 100_500, 0.22),
        (100_500, 191_950, 0.24), (191_950, 243_700, 0.32), (243_700, 609_350, 0.35),
        (609_350, np.inf, 0.37),
    ],
}

# =============================================================================
# 2. Federal Preferential Income Tax Brackets (Capital Gains / QDivs)
# =============================================================================
CAPGAINS_BRACKETS_2024: Dict[TaxFilingStatus, List[Tuple[float, float, float]]] = {
    "single": [(0, 47_025, 0.0), (47_025, 518_900, 0.15), (518_900, np.inf, 0.20)],
    "married": [(0, 94_050, 0.0), (94_050, 583_750, 0.15), (583_750, np.inf, 0.20)],
    "head_of_household": [(0, 63_000, 0.0), (63_000, 551_350, 0.15), (551_350, np.inf, 0.20)],
}

# =============================================================================
# 3. Federal Deductions and Surtax Thresholds
# =============================================================================
STANDARD_DEDUCTION_2024: Dict[TaxFilingStatus, float] = {
    "single": 14_600,
    "married": 29_200,
    "head_of_household": 21_900,
}

# Per qualifying person aged 65+
EXTRA_STD_DEDUCTION_65: Dict[TaxFilingStatus, float] = {
    "single": 1_950,
    "married": 1_550,
    "head_of_household": 1_950,
}

NIIT_RATE = 0.038
NIIT_THRESHOLD_2024: Dict[TaxFilingStatus, float] = {
    "single": 200_000,
    "married": 250_000,
    "head_of_household": 200_000,
}

# =============================================================================
# 4. Social Security Taxation Thresholds (Statutory and NOT indexed)
# =============================================================================
# (first_threshold, second_threshold) on provisional income
SS_TAX_THRESHOLDS: Dict[TaxFilingStatus, Tuple[float, float]] = {
    "single": (25_000, 34_000),
    "married": (32_000, 44_000),
    "head_of_household": (25_000, 34_000),
}
SS_FIRST_TIER_RATE = 0.50
SS_SECOND_TIER_RATE = 0.85

# =============================================================================
# 5. Medicare IRMAA (2024, monthly per person)
# =============================================================================
BASE_PART_B_2024 = 174.70

# (magi_upper_bound, part_b_total_monthly, part_d_addon_monthly); a MAGI below the
# bound falls in that tier, the last tier is open-ended.
IRMAA_TIERS_2024: Dict[str, List[Tuple[float, float, float]]] = {
    "single": [
        (103_000, 174.70, 0.00),
        (129_000, 244.60, 12.90),
        (161_000, 349.40, 33.30),
        (193_000, 454.20, 53.80),
        (500_000, 559.00, 74.20),
        (np.inf, 594.00, 81.00),
    ],
    "married": [
        (206_000, 174.70, 0.00),
        (258_000, 244.60, 12.90),
        (322_000, 349.40, 33.30),
        (386_000, 454.20, 53.80),
        (750_000, 559.00, 74.20),
        (np.inf, 594.00, 81.00),
    ],
}
MEDICARE_START_AGE = 65

# =============================================================================
# 6. Required Minimum Distributions
# =============================================================================
RMD_START_AGE = 73

# =============================================================================
# 7. State Tax Parameters (2024)
# =============================================================================
# Each state: standard deduction by status, brackets by status (single also
# used for head of household) and pension exemption cap. Social Security
# taxation is listed in SS_TAXING_STATES. States absent from this table fall
# back to $0 with a warning.
STATE_TAX_CONFIGS: Dict[str, Dict[str, Any]] = {
    "FL": {"name": "Florida", "has_income_tax": False},
    "TX": {"name": "Texas", "has_income_tax": False},
    "WA": {"name": "Washington", "has_income_tax": False},
    "NV": {"name": "Nevada", "has_income_tax": False},
    "TN": {"name": "Tennessee", "has_income_tax": False},
    "CA": {
        "name": "California",
        "has_income_tax": True,
        "std_deduction": {"single": 5_202, "married": 10_404},
        "brackets": {
            "single": [
                (0, 10_099, 0.01), (10_099, 23_942, 0.02), (23_942, 37_788, 0.04),
                (37_788, 52_455, 0.06), (52_455, 66_295, 0.08), (66_295, 338_639, 0.093),
                (338_639, 406_364, 0.103), (406_364, 677_278, 0.113), (677_278, np.inf, 0.123),
            ],
            "married": [
                (0, 20_198, 0.01), (20_198, 47_884, 0.02), (47_884, 75_576, 0.04),
                (75_576, 104_910, 0.06), (104_910, 132_590, 0.08), (132_590, 677_278, 0.093),
                (677_278, 812_728, 0.103), (812_728, 1_354_556, 0.113), (1_354_556, np.inf, 0.123),
            ],
        },
        "pension_exemption": 0.0,
    },
    "NY": {
        "name": "New York",
        "has_income_tax": True,
        "std_deduction": {"single": 8_000, "married": 16_050},
        "brackets": {
            "single": [
                (0, 8_500, 0.04), (8_500, 11_700, 0.045), (11_700, 13_900, 0.0525),
                (13_900, 80_650, 0.0585), (80_650, 215_400, 0.0625), (215_400, 1_077_550, 0.0685),
                (1_077_550, 5_000_000, 0.0965), (5_000_000, 25_000_000, 0.103), (25_000_000, np.inf, 0.109),
            ],
            "married": [
                (0, 17_150, 0.04), (17_150, 23_600, 0.045), (23_600, 27_900, 0.0525),
                (27_900, 161_550, 0.0585), (161_550, 323_200, 0.0625), (323_200, 2_155_350, 0.0685),
                (2_155_350, 5_000_000, 0.0965), (5_000_000, 25_000_000, 0.103), (25_000_000, np.inf, 0.109),
            ],
        },
        "pension_exemption": 20_000,
    },
    "PA": {
        "name": "Pennsylvania",
        "has_income_tax": True,
        "std_deduction": {"single": 0, "married": 0},
        "brackets": {"single": [(0, np.inf, 0.0307)], "married": [(0, np.inf, 0.0307)]},
        # All retirement income is exempt
        "pension_exemption": np.inf,
    },
    "IL": {
        "name": "Illinois",
        "has_income_tax": True,
        "std_deduction": {"single": 2_425, "married": 4_850},
        "brackets": {"single": [(0, np.inf, 0.0495)], "married": [(0, np.inf, 0.0495)]},
        "pension_exemption": 0.0,
    },
    "NC": {
        "name": "North Carolina",
        "has_income_tax": True,
        "std_deduction": {"single": 12_750, "married": 25_500},
        "brackets": {"single": [(0, np.inf, 0.0475)], "married": [(0, np.inf, 0.0475)]},
        "pension_exemption": 0.0,
    },
    "UT": {
        "name": "Utah",
        "has_income_tax": True,
        "std_deduction": {"single": 0, "married": 0},
        "brackets": {"single": [(0, np.inf, 0.0455)], "married": [(0, np.inf, 0.0455)]},
        "pension_exemption": 0.0,
    },
    "VA": {
        "name": "Virginia",
        "has_income_tax": True,
        # Standard deduction plus personal exemption(s)
        "std_deduction": {"single": 8_000 + 930, "married": 16_000 + 2 * 930},
        "brackets": {
            "single": [(0, 3_000, 0.02), (3_000, 5_000, 0.03), (5_000, 17_000, 0.05), (17_000, np.inf, 0.0575)],
            "married": [(0, 3_000, 0.02), (3_000, 5_000, 0.03), (5_000, 17_000, 0.05), (17_000, np.inf, 0.0575)],
        },
        "pension_exemption": 0.0,
    },
    "ME": {
        "name": "Maine",
        "has_income_tax": True,
        "std_deduction": {"single": 14_600, "married": 29_200},
        "brackets": {
            "single": [(0, 26_050, 0.058), (26_050, 61_600, 0.0675), (61_600, np.inf, 0.0715)],
            "married": [(0, 52_100, 0.058), (52_100, 123_250, 0.0675), (123_250, np.inf, 0.0715)],
        },
        # Maine pension income deduction
        "pension_exemption": 35_000,
    },
}

# Configured states that tax some Social Security (simplified to the federal taxable amount)
SS_TAXING_STATES = frozenset({"UT"})


def state_filing_key(filing_status: str) -> str:
    """State tables only distinguish single and married filers."""
    return "married" if filing_status == "married" else "single"


def get_state_config(state: str) -> Dict[str, Any] | None:
    return STATE_TAX_CONFIGS.get((state or "").strip().upper())
