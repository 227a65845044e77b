import argparse
import json
import logging
import sys
from typing import List, Optional

import pandas as pd

from errors import InvalidParameterError
from engine.monte_carlo import run_monte_carlo
from models import AggregateResult
from utils.input_adapter import get_run_settings, get_simulation_parameters

logger = logging.getLogger(__name__)

# =============================================================================
# COMMAND LINE
# =============================================================================

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Regime-switching retirement Monte Carlo")
    parser.add_argument("--profile", help="Profile XML (defaults to config/default_profile.xml)")
    parser.add_argument("--iterations", type=int, help="Number of realizations")
    parser.add_argument("--seed", type=int, help="Root random seed")
    parser.add_argument("--workers", type=int, default=1, help="Worker processes (default: 1)")
    parser.add_argument("--current-age", dest="current_age", type=int)
    parser.add_argument("--retirement-age", dest="retirement_age", type=int)
    parser.add_argument("--annual-expenses", dest="annual_expenses", type=float)
    parser.add_argument("--guaranteed-income", dest="annual_guaranteed_income", type=float)
    parser.add_argument("--state", help="Two-letter state of residence")
    parser.add_argument("--filing-status", dest="filing_status",
                        choices=["single", "married", "head_of_household"])
    parser.add_argument("--guardrails", dest="use_guardrails", action="store_true", default=None)
    parser.add_argument("--no-swr", action="store_true", help="Skip the safe-withdrawal-rate search")
    parser.add_argument("--json", dest="json_path", help="Write the full result as JSON to this path")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def summary_frame(result: AggregateResult) -> pd.DataFrame:
    """One-column table of the headline statistics."""
    rows = {
        "Probability of success": f"{result.probability_of_success:.1%}",
        "Median ending balance": f"${result.percentile_50:,.0f}",
        "10th percentile ending balance": f"${result.percentile_10:,.0f}",
        "90th percentile ending balance": f"${result.percentile_90:,.0f}",
        "Worst case ending balance": f"${result.worst_case_ending_balance:,.0f}",
        "Safe withdrawal rate": (
            f"{result.safe_withdrawal_rate:.2%}" if result.safe_withdrawal_rate is not None else "n/a"
        ),
        "Average effective tax rate": f"{result.average_effective_tax_rate:.1%}",
        "IRMAA incidence": f"{result.irmaa_incidence:.1%}",
        "Avg years in bear / crisis": (
            f"{result.average_years_in_bear:.1f} / {result.average_years_in_crisis:.1f}"
        ),
        "Legacy goal met": f"{result.legacy_goal_probability:.1%}",
        "Projected retirement portfolio": f"${result.projected_retirement_portfolio:,.0f}",
    }
    return pd.DataFrame.from_dict(rows, orient="index", columns=["value"])


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    overrides = {
        name: getattr(args, name)
        for name in ("current_age", "retirement_age", "annual_expenses", "annual_guaranteed_income",
                     "state", "filing_status", "use_guardrails")
    }
    try:
        params = get_simulation_parameters(args.profile, **overrides)
    except InvalidParameterError as exc:
        print(f"Invalid profile: {exc}", file=sys.stderr)
        return 2

    iterations, seed = get_run_settings(args.profile)
    iterations = args.iterations or iterations
    seed = args.seed if args.seed is not None else seed

    result = run_monte_carlo(params, iterations, seed, workers=args.workers, swr_search=not args.no_swr)

    print(summary_frame(result).to_string(header=False))
    if args.json_path:
        with open(args.json_path, "w") as f:
            json.dump(result.to_dict(), f, indent=2)
        logger.info(f"Wrote result to {args.json_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
