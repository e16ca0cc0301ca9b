"""
Run independent simulation replicates and aggregate the orthant probability
of every symptom combination into a mean / SD / rank table.

Each replicate draws from its own generator spawned off one SeedSequence, so
replicate i gives the same numbers whatever order replicates run in.
"""

from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from classify_cases import (
    classify_individuals,
    combination_labels,
    meets_criteria,
    observed_pattern_frequencies,
    select_cases,
    symptom_combinations,
)
from generate_population import DegenerateSampleError, PopulationGenerator
from orthant_probabilities import (
    IntegrationFailure,
    IntegrationTolerance,
    estimate_orthant_probabilities,
    fit_case_distribution,
)
from simulation_config import INDICATORS

SUMMARY_COLUMNS = [
    "combination", "mean_probability", "sd_probability", "meets_criteria", "rank",
]


class SimulationFailed(RuntimeError):
    """No replicate produced a usable result."""


@dataclass
class ReplicateResult:
    index: int
    probabilities: np.ndarray
    observed: np.ndarray
    n_cases: int
    total_mass: float
    case_corr: np.ndarray
    attempts: int = 1


@dataclass
class SimulationRun:
    probabilities: pd.DataFrame
    observed: pd.DataFrame
    diagnostics: pd.DataFrame
    case_corr: pd.DataFrame
    failures: list = field(default_factory=list)
    n_reps: int = 0

    @property
    def n_failed(self) -> int:
        return len(self.failures)

    @property
    def n_succeeded(self) -> int:
        return len(self.probabilities)


def replicate_generators(seed: int, n_reps: int) -> list[np.random.Generator]:
    children = np.random.SeedSequence(seed).spawn(n_reps)
    return [np.random.default_rng(child) for child in children]


def run_replicate(cfg, rng: np.random.Generator, index: int = 0) -> ReplicateResult:
    """generate -> classify -> select cases -> fit -> integrate, once."""
    patterns = symptom_combinations(len(INDICATORS))

    population = PopulationGenerator.from_config(cfg).generate(cfg.n, rng)
    classified = classify_individuals(population, cfg.threshold, cfg.min_criteria)
    cases = select_cases(classified, cfg.min_cases)

    mean, cov = fit_case_distribution(cases)
    try:
        probs = estimate_orthant_probabilities(
            mean, cov, patterns,
            tolerance=IntegrationTolerance.from_config(cfg),
            threshold=cfg.threshold,
            backend=cfg.backend,
            rng=rng,
        )
    except IntegrationFailure as e:
        e.replicate = index
        raise

    case_corr = np.corrcoef(cases[INDICATORS].to_numpy(dtype=float), rowvar=False)
    return ReplicateResult(
        index=index,
        probabilities=probs,
        observed=observed_pattern_frequencies(cases, cfg.threshold),
        n_cases=len(cases),
        total_mass=float(probs.sum()),
        case_corr=case_corr,
    )


def _failure_row(index, attempts, error) -> dict:
    return {
        "replicate": index,
        "attempts": attempts,
        "error_type": type(error).__name__,
        "combination": getattr(error, "combination", None),
        "detail": str(error),
    }


def simulate_replicates(cfg, verbose: bool = True) -> SimulationRun:
    """Run cfg.n_reps replicates under cfg.failure_policy.

    resample  degenerate samples are redrawn (same replicate generator) up
              to cfg.max_attempts times; exhausted or integration-failed
              replicates are recorded and left out of the matrix
    skip      first failure is recorded, replicate left out
    abort     first failure propagates
    """
    labels = combination_labels(len(INDICATORS))
    results = []
    failures = []

    for i, rng in enumerate(replicate_generators(cfg.seed, cfg.n_reps)):
        attempts = 0
        while True:
            attempts += 1
            try:
                result = run_replicate(cfg, rng, index=i)
            except DegenerateSampleError as e:
                if cfg.failure_policy == "abort":
                    raise
                if cfg.failure_policy == "resample" and attempts < cfg.max_attempts:
                    if verbose:
                        print(f"  replicate {i}: degenerate sample ({e}), resampling")
                    continue
                failures.append(_failure_row(i, attempts, e))
                result = None
            except IntegrationFailure as e:
                if cfg.failure_policy == "abort":
                    raise
                failures.append(_failure_row(i, attempts, e))
                result = None
            break

        if result is None:
            if verbose:
                print(f"  replicate {i}: FAILED ({failures[-1]['error_type']})")
            continue

        result.attempts = attempts
        results.append(result)
        if verbose:
            print(f"  replicate {i}: {result.n_cases} cases, "
                  f"total mass {result.total_mass:.4f}")

    if verbose:
        print(f"Completed {len(results)}/{cfg.n_reps} replicates "
              f"({len(failures)} failed)")
    if not results:
        raise SimulationFailed(
            f"all {cfg.n_reps} replicates failed; first error: {failures[0]['detail']}"
        )

    index = pd.Index([r.index for r in results], name="replicate")
    probabilities = pd.DataFrame(
        np.vstack([r.probabilities for r in results]), index=index, columns=labels
    )
    observed = pd.DataFrame(
        np.vstack([r.observed for r in results]), index=index, columns=labels
    )
    diagnostics = pd.DataFrame(
        {
            "n_cases": [r.n_cases for r in results],
            "total_mass": [r.total_mass for r in results],
            "attempts": [r.attempts for r in results],
        },
        index=index,
    )
    case_corr = pd.DataFrame(
        np.mean([r.case_corr for r in results], axis=0),
        index=INDICATORS, columns=INDICATORS,
    )
    return SimulationRun(
        probabilities=probabilities,
        observed=observed,
        diagnostics=diagnostics,
        case_corr=case_corr,
        failures=failures,
        n_reps=cfg.n_reps,
    )


def summarize_combinations(probabilities: pd.DataFrame, min_criteria: int = 2,
                           observed: pd.DataFrame | None = None) -> pd.DataFrame:
    """One row per combination, sorted by descending mean probability.

    Sort is stable, so ties keep the fixed enumeration order; rank 1..32
    follows that order.
    """
    if len(probabilities) == 0:
        raise ValueError("no replicate results to summarise")
    labels = list(probabilities.columns)
    patterns = [tuple(int(c) for c in label) for label in labels]

    summary = pd.DataFrame({
        "combination": labels,
        "mean_probability": probabilities.mean(axis=0).to_numpy(),
        # ddof=1; NaN when only one replicate succeeded
        "sd_probability": probabilities.std(axis=0, ddof=1).to_numpy(),
        "meets_criteria": [meets_criteria(p, min_criteria) for p in patterns],
    })
    if observed is not None:
        summary["observed_mean_proportion"] = observed[labels].mean(axis=0).to_numpy()
    summary["n_replicates"] = len(probabilities)

    # Primary key: -mean; secondary: position in the enumeration
    order = np.lexsort((np.arange(len(summary)), -summary["mean_probability"].to_numpy()))
    summary = summary.iloc[order].reset_index(drop=True)
    summary.insert(SUMMARY_COLUMNS.index("rank"), "rank", np.arange(1, len(summary) + 1))
    return summary


def criteria_combinations(summary: pd.DataFrame) -> pd.DataFrame:
    """Criteria-meeting rows only, keeping the descending order."""
    return summary[summary["meets_criteria"]].reset_index(drop=True)
