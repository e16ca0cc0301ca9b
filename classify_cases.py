"""
Diagnostic classification of simulated individuals.

An indicator is positive when its value is at or above the threshold; an
individual is diagnosed when at least ``min_criteria`` of the five indicators
are positive (k-of-n rule). The same rule decides whether a symptom
combination "meets criteria", so table and classifier never disagree.
"""

import itertools

import numpy as np
import pandas as pd

from generate_population import DegenerateSampleError
from simulation_config import (
    DEFAULT_MIN_CASES,
    DEFAULT_MIN_CRITERIA,
    DEFAULT_THRESHOLD,
    INDICATORS,
)


# ── Symptom combinations ────────────────────────────────────────────────────

def symptom_combinations(n_indicators: int = len(INDICATORS)) -> list[tuple]:
    """All binary patterns over the indicators, in fixed enumeration order.

    00000, 00001, ..., 11111 (digit order = INDICATORS).
    """
    return list(itertools.product((0, 1), repeat=n_indicators))


def combination_label(pattern) -> str:
    return "".join(str(int(b)) for b in pattern)


def combination_labels(n_indicators: int = len(INDICATORS)) -> list[str]:
    return [combination_label(p) for p in symptom_combinations(n_indicators)]


def satisfies_rule(criteria_met, min_criteria: int = DEFAULT_MIN_CRITERIA):
    """k-of-n rule on a count of positives (an int or a pandas Series)."""
    return criteria_met >= min_criteria


def meets_criteria(pattern, min_criteria: int = DEFAULT_MIN_CRITERIA) -> bool:
    """k-of-n rule on a single 0/1 pattern."""
    return bool(satisfies_rule(sum(int(b) for b in pattern), min_criteria))


# ── Individuals ─────────────────────────────────────────────────────────────

def positive_column(indicator: str) -> str:
    return f"{indicator}_positive"


def classify_individuals(population: pd.DataFrame,
                         threshold: float = DEFAULT_THRESHOLD,
                         min_criteria: int = DEFAULT_MIN_CRITERIA) -> pd.DataFrame:
    """Add per-indicator positivity, ``criteria_met`` and ``diagnosed``.

    Returns a new frame; the input is left untouched.
    """
    classified = population.copy()
    pos_cols = []
    for ind in INDICATORS:
        col = positive_column(ind)
        classified[col] = classified[ind] >= threshold
        pos_cols.append(col)

    classified["criteria_met"] = classified[pos_cols].sum(axis=1).astype(int)
    classified["diagnosed"] = satisfies_rule(classified["criteria_met"], min_criteria)
    return classified


def select_cases(classified: pd.DataFrame, min_cases: int = DEFAULT_MIN_CASES) -> pd.DataFrame:
    """Diagnosed subset; too few rows for a covariance estimate is an error."""
    cases = classified[classified["diagnosed"]]
    if len(cases) < min_cases:
        raise DegenerateSampleError(
            f"only {len(cases)} diagnosed cases (need >= {min_cases} "
            f"for a {len(INDICATORS)}x{len(INDICATORS)} covariance estimate)"
        )
    return cases


def observed_pattern_frequencies(cases: pd.DataFrame,
                                 threshold: float = DEFAULT_THRESHOLD) -> np.ndarray:
    """Empirical share of each combination among cases, in enumeration order."""
    n_ind = len(INDICATORS)
    bits = (cases[INDICATORS].to_numpy() >= threshold).astype(int)
    # Leftmost indicator is the most significant digit of the label
    weights = 2 ** np.arange(n_ind - 1, -1, -1)
    codes = bits @ weights
    counts = np.bincount(codes, minlength=2 ** n_ind)
    if len(cases) == 0:
        return counts.astype(float)
    return counts / len(cases)
