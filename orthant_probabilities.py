"""
Orthant probabilities of a multivariate normal fitted to diagnosed cases.

Each symptom combination defines an orthant at the positivity threshold:
bit 1 -> [threshold, +inf), bit 0 -> (-inf, threshold). The probability of a
combination is the mass of the fitted normal inside its orthant.

Integration backends are pluggable through ``ORTHANT_BACKENDS``:

    genz         scipy.stats.multivariate_normal.cdf with lower_limit
                 (Genz-type randomized quasi-Monte-Carlo). The budget maxpts
                 (default 25_000 * dim) is split over n_estimates
                 independently seeded runs; their standard error must be
                 within max(abseps, releps * p), else maxpts is doubled, at
                 most max_retries times, then IntegrationFailure.
    monte_carlo  plain simulation: n_draws samples, share in each orthant.
                 Standard error ~ sqrt(p * (1 - p) / n_draws).

Results are not renormalised; they need not sum exactly to 1.
"""

from dataclasses import dataclass

import numpy as np
from scipy.stats import multivariate_normal

from classify_cases import combination_label
from simulation_config import DEFAULT_THRESHOLD, INDICATORS


class IntegrationFailure(RuntimeError):
    """Orthant integration could not produce a valid probability."""

    def __init__(self, message, combination=None, replicate=None):
        super().__init__(message)
        self.combination = combination
        self.replicate = replicate

    def __str__(self):
        where = []
        if self.replicate is not None:
            where.append(f"replicate={self.replicate}")
        if self.combination is not None:
            where.append(f"combination={self.combination}")
        msg = super().__str__()
        return f"{msg} ({', '.join(where)})" if where else msg


@dataclass
class IntegrationTolerance:
    abseps: float = 1e-4
    releps: float = 1e-3
    maxpts: int | None = None
    max_retries: int = 3
    n_estimates: int = 5
    n_draws: int = 200_000

    @classmethod
    def from_config(cls, cfg):
        return cls(
            abseps=cfg.abseps,
            releps=cfg.releps,
            maxpts=cfg.maxpts,
            max_retries=cfg.max_retries,
            n_estimates=cfg.n_estimates,
            n_draws=cfg.n_draws,
        )

    def points_for(self, dim: int) -> int:
        return self.maxpts if self.maxpts is not None else 25_000 * dim


# ── Fitting ─────────────────────────────────────────────────────────────────

def fit_case_distribution(cases):
    """Sample mean vector and covariance (ddof=1) of the cases' indicators."""
    if hasattr(cases, "loc"):
        cases = cases[INDICATORS].to_numpy(dtype=float)
    data = np.asarray(cases, dtype=float)
    mean = data.mean(axis=0)
    cov = np.cov(data, rowvar=False, ddof=1)
    return mean, np.atleast_2d(cov)


def orthant_bounds(pattern, threshold: float = DEFAULT_THRESHOLD):
    bits = np.asarray(pattern, dtype=int)
    lower = np.where(bits == 1, threshold, -np.inf)
    upper = np.where(bits == 1, np.inf, threshold)
    return lower, upper


def check_positive_definite(covariance) -> np.ndarray:
    cov = np.asarray(covariance, dtype=float)
    if cov.ndim != 2 or cov.shape[0] != cov.shape[1]:
        raise IntegrationFailure(f"covariance must be square, got shape {cov.shape}")
    if not np.all(np.isfinite(cov)):
        raise IntegrationFailure("covariance contains non-finite entries")
    if not np.allclose(cov, cov.T):
        raise IntegrationFailure("covariance is not symmetric")
    try:
        np.linalg.cholesky(cov)
    except np.linalg.LinAlgError as e:
        raise IntegrationFailure("covariance is not positive definite") from e
    return cov


# ── Backends ────────────────────────────────────────────────────────────────

def genz_orthant(mean, cov, lower, upper, tolerance, rng):
    """One orthant probability with an empirical error estimate.

    The point budget is split over n_estimates independent randomized runs;
    their standard error must fall within max(abseps, releps * |p|). A miss
    doubles the budget, up to max_retries times.

    Returns (probability, standard_error).
    """
    dim = len(mean)
    maxpts = tolerance.points_for(dim)
    p = stderr = target = np.nan
    for _ in range(tolerance.max_retries + 1):
        dist = multivariate_normal(
            mean=mean, cov=cov, seed=rng,
            maxpts=max(1, maxpts // tolerance.n_estimates),
            abseps=tolerance.abseps, releps=tolerance.releps,
        )
        # Frozen dist advances rng on each call, so the runs are independent
        runs = np.array([dist.cdf(upper, lower_limit=lower)
                         for _ in range(tolerance.n_estimates)], dtype=float)
        p = float(runs.mean())
        stderr = float(runs.std(ddof=1) / np.sqrt(len(runs)))
        target = max(tolerance.abseps, tolerance.releps * abs(p))
        if (np.all(np.isfinite(runs)) and stderr <= target
                and -tolerance.abseps <= p <= 1.0 + tolerance.abseps):
            return min(1.0, max(0.0, p)), stderr
        maxpts *= 2
    raise IntegrationFailure(
        f"Genz integration missed tolerance: p={p:.6g}, "
        f"stderr={stderr:.3g} > {target:.3g} at maxpts={maxpts // 2}"
    )


def _genz_orthants(mean, cov, patterns, tolerance, threshold, rng):
    probs = np.empty(len(patterns))
    for i, pattern in enumerate(patterns):
        lower, upper = orthant_bounds(pattern, threshold)
        try:
            probs[i], _ = genz_orthant(mean, cov, lower, upper, tolerance, rng)
        except IntegrationFailure as e:
            e.combination = combination_label(pattern)
            raise
    return probs


def _monte_carlo_orthants(mean, cov, patterns, tolerance, threshold, rng):
    dim = len(mean)
    draws = rng.multivariate_normal(mean, cov, size=tolerance.n_draws, method="cholesky")
    bits = (draws >= threshold).astype(int)
    weights = 2 ** np.arange(dim - 1, -1, -1)
    counts = np.bincount(bits @ weights, minlength=2 ** dim)
    codes = [int(np.asarray(p, dtype=int) @ weights) for p in patterns]
    return counts[codes] / tolerance.n_draws


ORTHANT_BACKENDS = {
    "genz": _genz_orthants,
    "monte_carlo": _monte_carlo_orthants,
}


def estimate_orthant_probabilities(mean, covariance, patterns, tolerance=None,
                                   threshold: float = DEFAULT_THRESHOLD,
                                   backend: str = "genz", rng=None) -> np.ndarray:
    """Probability of each pattern's orthant under N(mean, covariance).

    Raises IntegrationFailure for a non-positive-definite covariance or an
    integral that stays invalid after the retry budget.
    """
    if tolerance is None:
        tolerance = IntegrationTolerance()
    if rng is None:
        rng = np.random.default_rng()
    try:
        integrate = ORTHANT_BACKENDS[backend]
    except KeyError as e:
        raise ValueError(
            f"unknown orthant backend {backend!r}; known: {sorted(ORTHANT_BACKENDS)}"
        ) from e

    mean = np.asarray(mean, dtype=float)
    cov = check_positive_definite(covariance)
    if cov.shape[0] != mean.shape[0]:
        raise IntegrationFailure(
            f"mean has {mean.shape[0]} dims but covariance is {cov.shape[0]}x{cov.shape[1]}"
        )
    for pattern in patterns:
        if len(pattern) != mean.shape[0]:
            raise ValueError(f"pattern {pattern!r} does not match {mean.shape[0]} dimensions")

    return integrate(mean, cov, list(patterns), tolerance, threshold, rng)
