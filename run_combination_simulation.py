"""
Estimate the probability of every symptom combination among simulated cases
of a unifaceted disorder, and save the tables, replicate matrix and plots.

Usage:
    python3 run_combination_simulation.py
    python3 run_combination_simulation.py --n 1000 --reps 100 --seed 123
    python3 run_combination_simulation.py --reps 10 --backend monte_carlo --no_plots
"""

import argparse
import json
import os
import sys

import pandas as pd

from aggregate_combinations import (
    SimulationFailed,
    criteria_combinations,
    simulate_replicates,
    summarize_combinations,
)
from plot_combinations import plot_case_correlation_heatmap, plot_criteria_combinations
from simulation_config import (
    BACKENDS,
    DEFAULT_MIN_CRITERIA,
    DEFAULT_N,
    DEFAULT_N_REPS,
    DEFAULT_SEED,
    DEFAULT_THRESHOLD,
    FAILURE_POLICIES,
    ConfigurationError,
    SimulationConfig,
)


def run_simulation(cfg: SimulationConfig, verbose: bool = True):
    """Run all replicates and build the summary tables.

    Returns (run, summary, criteria).
    """
    if verbose:
        print(f"Simulating {cfg.n_reps} replicates of n={cfg.n} "
              f"(seed={cfg.seed}, backend={cfg.backend})")
    run = simulate_replicates(cfg, verbose=verbose)
    summary = summarize_combinations(run.probabilities, cfg.min_criteria, observed=run.observed)
    criteria = criteria_combinations(summary)
    return run, summary, criteria


def save_outputs(cfg, run, summary, criteria, output_dir, plots: bool = True) -> list[str]:
    """Save tables as CSV, the run configuration as JSON, and the plots."""
    os.makedirs(output_dir, exist_ok=True)
    written = []

    # --- CSV ---
    tables = [
        ("combinations_summary.csv", summary, False),
        ("criteria_combinations.csv", criteria, False),
        ("replicate_probabilities.csv", run.probabilities, True),
        ("replicate_diagnostics.csv", run.diagnostics, True),
    ]
    if run.failures:
        tables.append(("failures_report.csv", pd.DataFrame(run.failures), False))
    for name, df, keep_index in tables:
        path = os.path.join(output_dir, name)
        df.to_csv(path, index=keep_index)
        print(f"Saved CSV: {path}")
        written.append(path)

    # --- JSON (run configuration) ---
    json_path = os.path.join(output_dir, "run_config.json")
    with open(json_path, "w") as f:
        json.dump(
            {**cfg.to_dict(), "n_succeeded": run.n_succeeded, "n_failed": run.n_failed},
            f, indent=2,
        )
    print(f"Saved JSON: {json_path}")
    written.append(json_path)

    if plots:
        written.append(plot_criteria_combinations(criteria, output_dir))
        written.append(plot_case_correlation_heatmap(run.case_corr, output_dir))
    return written


def print_summary(run, summary, criteria, top: int = 5):
    print("=" * 70)
    print("  SYMPTOM COMBINATION SUMMARY")
    print("=" * 70)
    print(f"\n  Replicates requested:   {run.n_reps}")
    print(f"  Replicates succeeded:   {run.n_succeeded}")
    print(f"  Replicates failed:      {run.n_failed}")
    print(f"  Mean cases / replicate: {run.diagnostics['n_cases'].mean():.1f}")
    print(f"  Mean total mass:        {run.diagnostics['total_mass'].mean():.4f}")
    print(f"  Criteria-meeting combinations: {len(criteria)}/{len(summary)}")

    print(f"\n  Top {top} criteria-meeting combinations:")
    print(f"    {'Rank':>4}  {'Combination':<12} {'Mean':>8} {'SD':>8}")
    for _, row in criteria.head(top).iterrows():
        print(f"    {row['rank']:>4}  {row['combination']:<12} "
              f"{row['mean_probability']:8.4f} {row['sd_probability']:8.4f}")

    if run.failures:
        print(f"\n  Failed replicates:")
        for f in run.failures:
            print(f"    replicate {f['replicate']:<5} {f['error_type']:<22} {f['detail']}")
    print()


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Monte Carlo symptom-combination probabilities among simulated cases."
    )
    parser.add_argument(
        "--n", type=int, default=DEFAULT_N,
        help=f"Population size per replicate (default: {DEFAULT_N})"
    )
    parser.add_argument(
        "--reps", type=int, default=DEFAULT_N_REPS,
        help=f"Number of replicates (default: {DEFAULT_N_REPS})"
    )
    parser.add_argument(
        "--seed", type=int, default=DEFAULT_SEED,
        help=f"Random seed for reproducibility (default: {DEFAULT_SEED})"
    )
    parser.add_argument(
        "--threshold", type=float, default=DEFAULT_THRESHOLD,
        help=f"Positivity threshold on the 0-4 scale (default: {DEFAULT_THRESHOLD})"
    )
    parser.add_argument(
        "--min_criteria", type=int, default=DEFAULT_MIN_CRITERIA,
        help=f"Positive indicators needed for a diagnosis (default: {DEFAULT_MIN_CRITERIA})"
    )
    parser.add_argument(
        "--backend", type=str, default="genz", choices=BACKENDS,
        help="Orthant integration backend (default: genz)"
    )
    parser.add_argument(
        "--failure_policy", type=str, default="resample", choices=FAILURE_POLICIES,
        help="What to do with a failed replicate (default: resample)"
    )
    parser.add_argument(
        "--abseps", type=float, default=1e-4,
        help="Absolute error tolerance of the Genz integration (default: 1e-4)"
    )
    parser.add_argument(
        "--releps", type=float, default=1e-3,
        help="Relative error tolerance of the Genz integration (default: 1e-3)"
    )
    parser.add_argument(
        "--maxpts", type=int, default=None,
        help="Integration points per orthant, split over the error-estimate runs "
             "(default: 25000 * dimensions)"
    )
    parser.add_argument(
        "--n_estimates", type=int, default=5,
        help="Independent Genz runs used to estimate the integration error (default: 5)"
    )
    parser.add_argument(
        "--n_draws", type=int, default=200_000,
        help="Draws per replicate for the monte_carlo backend (default: 200000)"
    )
    parser.add_argument(
        "--output_dir", type=str, default=None,
        help="Output directory (default: ./combination_results/)"
    )
    parser.add_argument(
        "--no_plots", action="store_true",
        help="Skip the bar chart and heatmap"
    )
    args = parser.parse_args(argv)

    output_dir = args.output_dir or os.path.join(os.getcwd(), "combination_results")

    try:
        cfg = SimulationConfig(
            n=args.n,
            n_reps=args.reps,
            seed=args.seed,
            threshold=args.threshold,
            min_criteria=args.min_criteria,
            backend=args.backend,
            failure_policy=args.failure_policy,
            abseps=args.abseps,
            releps=args.releps,
            maxpts=args.maxpts,
            n_estimates=args.n_estimates,
            n_draws=args.n_draws,
        )
    except ConfigurationError as e:
        print(f"Error: {e}")
        sys.exit(1)

    try:
        run, summary, criteria = run_simulation(cfg)
    except SimulationFailed as e:
        print(f"Error: {e}")
        sys.exit(1)

    print_summary(run, summary, criteria)
    save_outputs(cfg, run, summary, criteria, output_dir, plots=not args.no_plots)
    print(f"\nDone. Outputs in: {output_dir}")


if __name__ == "__main__":
    main()
