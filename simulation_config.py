"""
Default parameters and validated run configuration for the symptom-combination
simulation.

Indicator order below is the digit order of every combination label
(e.g. "11001" = S1+, S2+, W1-, W2-, M+).
"""

import math
from dataclasses import asdict, dataclass, field


class ConfigurationError(ValueError):
    """User-fixable configuration error, raised before any simulation work."""


# ── Indicators ──────────────────────────────────────────────────────────────
INDICATORS = ["S1", "S2", "W1", "W2", "M"]

# Signal strength of each indicator on the latent disorder state.
# Strong (S), medium (M) and weak (W) indicators.
DEFAULT_LOADINGS = {
    "S1": 2.0, "S2": 1.8,
    "W1": 0.6, "W2": 0.4,
    "M": 1.2,
}

# Residual noise grows as the indicator weakens.
DEFAULT_NOISE_SD = {
    "S1": 0.5, "S2": 0.5,
    "W1": 1.0, "W2": 1.0,
    "M": 0.8,
}

# ── Run defaults ────────────────────────────────────────────────────────────
DEFAULT_N = 1000
DEFAULT_N_REPS = 100
DEFAULT_SEED = 123
DEFAULT_PREVALENCE = 0.5
DEFAULT_NOISE_MEAN = 2.0
DEFAULT_THRESHOLD = 2.0
DEFAULT_MIN_CRITERIA = 2
DEFAULT_VALUE_RANGE = (0.0, 4.0)
# Floor on diagnosed cases for a 5x5 covariance estimate
DEFAULT_MIN_CASES = 6

BACKENDS = ("genz", "monte_carlo")
FAILURE_POLICIES = ("resample", "skip", "abort")


@dataclass
class SimulationConfig:
    n: int = DEFAULT_N
    n_reps: int = DEFAULT_N_REPS
    seed: int = DEFAULT_SEED

    loadings: dict = field(default_factory=lambda: dict(DEFAULT_LOADINGS))
    noise_sd: dict = field(default_factory=lambda: dict(DEFAULT_NOISE_SD))
    prevalence: float = DEFAULT_PREVALENCE
    noise_mean: float = DEFAULT_NOISE_MEAN
    value_range: tuple = DEFAULT_VALUE_RANGE

    threshold: float = DEFAULT_THRESHOLD
    min_criteria: int = DEFAULT_MIN_CRITERIA
    min_cases: int = DEFAULT_MIN_CASES

    # Orthant integration
    backend: str = "genz"
    abseps: float = 1e-4
    releps: float = 1e-3
    maxpts: int | None = None
    max_retries: int = 3
    n_estimates: int = 5
    n_draws: int = 200_000

    failure_policy: str = "resample"
    max_attempts: int = 3

    def __post_init__(self) -> None:
        if isinstance(self.backend, str):
            self.backend = self.backend.lower()
        if isinstance(self.failure_policy, str):
            self.failure_policy = self.failure_policy.lower()
        self.value_range = tuple(float(v) for v in self.value_range)
        validate_config(self)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["value_range"] = list(self.value_range)
        d["indicators"] = list(INDICATORS)
        return d


def _finite(x) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool) and math.isfinite(float(x))


def _positive_int(x) -> bool:
    return isinstance(x, int) and not isinstance(x, bool) and x > 0


def validate_config(cfg: SimulationConfig) -> None:
    # --- sizes ---
    if not _positive_int(cfg.min_cases):
        raise ConfigurationError(f"min_cases must be a positive int, got {cfg.min_cases!r}")
    if not _positive_int(cfg.n):
        raise ConfigurationError(f"population size n must be a positive int, got {cfg.n!r}")
    if cfg.n < cfg.min_cases:
        raise ConfigurationError(
            f"population size n={cfg.n} is below the case floor min_cases={cfg.min_cases}; "
            "no replicate could ever yield enough cases for a covariance estimate"
        )
    if not _positive_int(cfg.n_reps):
        raise ConfigurationError(f"replicate count n_reps must be a positive int, got {cfg.n_reps!r}")
    if not isinstance(cfg.seed, int) or isinstance(cfg.seed, bool) or cfg.seed < 0:
        raise ConfigurationError(f"seed must be int >= 0, got {cfg.seed!r}")

    # --- indicator table ---
    for name, table in (("loadings", cfg.loadings), ("noise_sd", cfg.noise_sd)):
        if not isinstance(table, dict):
            raise ConfigurationError(f"{name} must be a dict keyed by indicator, got {type(table).__name__}")
        missing = [ind for ind in INDICATORS if ind not in table]
        if missing:
            raise ConfigurationError(f"{name} is missing indicators {missing}")
        extra = [k for k in table if k not in INDICATORS]
        if extra:
            raise ConfigurationError(f"{name} has unknown indicators {extra}; expected {INDICATORS}")
    for ind in INDICATORS:
        if not _finite(cfg.loadings[ind]):
            raise ConfigurationError(f"loadings[{ind!r}] must be finite, got {cfg.loadings[ind]!r}")
        if not _finite(cfg.noise_sd[ind]) or cfg.noise_sd[ind] <= 0:
            raise ConfigurationError(f"noise_sd[{ind!r}] must be finite and > 0, got {cfg.noise_sd[ind]!r}")

    if not _finite(cfg.prevalence) or not (0.0 <= cfg.prevalence <= 1.0):
        raise ConfigurationError(f"prevalence must be in [0, 1], got {cfg.prevalence!r}")
    if not _finite(cfg.noise_mean):
        raise ConfigurationError(f"noise_mean must be finite, got {cfg.noise_mean!r}")

    # --- value range / threshold / rule ---
    if len(cfg.value_range) != 2:
        raise ConfigurationError(f"value_range must be (low, high), got {cfg.value_range!r}")
    low, high = cfg.value_range
    if not (_finite(low) and _finite(high)) or low >= high:
        raise ConfigurationError(f"value_range must be finite with low < high, got {cfg.value_range!r}")
    if not _finite(cfg.threshold) or not (low < cfg.threshold < high):
        raise ConfigurationError(
            f"threshold {cfg.threshold!r} must lie strictly inside the indicator range {cfg.value_range}"
        )
    n_ind = len(INDICATORS)
    if not isinstance(cfg.min_criteria, int) or isinstance(cfg.min_criteria, bool) \
            or not (1 <= cfg.min_criteria <= n_ind):
        raise ConfigurationError(
            f"diagnostic rule needs 1 <= k <= n={n_ind}, got k={cfg.min_criteria!r}"
        )

    # --- integration ---
    if cfg.backend not in BACKENDS:
        raise ConfigurationError(f"backend must be one of {BACKENDS}, got {cfg.backend!r}")
    for name in ("abseps", "releps"):
        val = getattr(cfg, name)
        if not _finite(val) or val <= 0:
            raise ConfigurationError(f"{name} must be finite and > 0, got {val!r}")
    if cfg.maxpts is not None and not _positive_int(cfg.maxpts):
        raise ConfigurationError(f"maxpts must be None or a positive int, got {cfg.maxpts!r}")
    if not isinstance(cfg.max_retries, int) or isinstance(cfg.max_retries, bool) or cfg.max_retries < 0:
        raise ConfigurationError(f"max_retries must be int >= 0, got {cfg.max_retries!r}")
    if not isinstance(cfg.n_estimates, int) or isinstance(cfg.n_estimates, bool) or cfg.n_estimates < 2:
        raise ConfigurationError(
            f"n_estimates must be int >= 2 for an error estimate, got {cfg.n_estimates!r}"
        )
    if not _positive_int(cfg.n_draws):
        raise ConfigurationError(f"n_draws must be a positive int, got {cfg.n_draws!r}")

    # --- failures ---
    if cfg.failure_policy not in FAILURE_POLICIES:
        raise ConfigurationError(
            f"failure_policy must be one of {FAILURE_POLICIES}, got {cfg.failure_policy!r}"
        )
    if not _positive_int(cfg.max_attempts):
        raise ConfigurationError(f"max_attempts must be a positive int, got {cfg.max_attempts!r}")
