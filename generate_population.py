"""
Population generator: a latent binary disorder state and five continuous
indicators, each rescaled on its realized range within the replicate.
"""

import numpy as np
import pandas as pd

from simulation_config import (
    DEFAULT_LOADINGS,
    DEFAULT_NOISE_MEAN,
    DEFAULT_NOISE_SD,
    DEFAULT_PREVALENCE,
    DEFAULT_VALUE_RANGE,
    INDICATORS,
)


class DegenerateSampleError(ValueError):
    """A replicate's sample cannot support the downstream estimate."""


def rescale_to_range(values, low: float = 0.0, high: float = 4.0) -> np.ndarray:
    """Map a whole column linearly so its realized min -> low and max -> high.

    Population-level transform: needs every value of the column up front.
    """
    values = np.asarray(values, dtype=float)
    v_min = values.min()
    v_max = values.max()
    span = v_max - v_min
    if not np.isfinite(span) or span <= 0:
        raise DegenerateSampleError(
            f"cannot rescale a column with zero range (min=max={v_min!r})"
        )
    scaled = low + (values - v_min) * (high - low) / span
    # Pin the extremes so min/max land exactly on the range ends
    scaled[values == v_min] = low
    scaled[values == v_max] = high
    return scaled


class PopulationGenerator:
    def __init__(self, loadings=None, noise_sd=None,
                 prevalence=DEFAULT_PREVALENCE, noise_mean=DEFAULT_NOISE_MEAN,
                 value_range=DEFAULT_VALUE_RANGE):
        self.indicators = list(INDICATORS)

        # Indicator loading on the latent state, and residual noise SD.
        # Strong indicators carry the most signal with the least noise.
        self.loadings = dict(DEFAULT_LOADINGS if loadings is None else loadings)
        self.noise_sd = dict(DEFAULT_NOISE_SD if noise_sd is None else noise_sd)

        self.prevalence = prevalence
        self.noise_mean = noise_mean
        self.value_range = tuple(value_range)

    @classmethod
    def from_config(cls, cfg):
        return cls(
            loadings=cfg.loadings,
            noise_sd=cfg.noise_sd,
            prevalence=cfg.prevalence,
            noise_mean=cfg.noise_mean,
            value_range=cfg.value_range,
        )

    def draw_raw(self, n: int, rng: np.random.Generator):
        """Draw the latent state and the unscaled indicator matrix (n x 5)."""
        latent = rng.binomial(1, self.prevalence, size=n)
        raw = np.empty((n, len(self.indicators)))
        for j, ind in enumerate(self.indicators):
            noise = rng.normal(loc=self.noise_mean, scale=self.noise_sd[ind], size=n)
            raw[:, j] = self.loadings[ind] * latent + noise
        return latent, raw

    def generate(self, n: int, rng: np.random.Generator) -> pd.DataFrame:
        # 1. Collect all raw values for the replicate
        latent, raw = self.draw_raw(n, rng)

        # 2. Rescale each indicator column on its realized range
        low, high = self.value_range
        scaled = np.empty_like(raw)
        for j, ind in enumerate(self.indicators):
            try:
                scaled[:, j] = rescale_to_range(raw[:, j], low, high)
            except DegenerateSampleError as e:
                raise DegenerateSampleError(f"indicator {ind}: {e}") from e

        population = pd.DataFrame(scaled, columns=self.indicators)
        population.insert(0, "latent", latent.astype(int))
        return population

    def validate(self, n: int = 5000, seed: int = 0):
        """Generate one population and print summary statistics.

        Sanity check that indicator means separate by latent state roughly
        in proportion to the loadings.
        """
        rng = np.random.default_rng(seed)
        pop = self.generate(n, rng)
        by_state = pop.groupby("latent")[self.indicators].mean()

        print(f"=== Validation: n={n}, prevalence={pop['latent'].mean():.3f} ===")
        print(f"{'Indicator':<10} {'Load':>6} {'SD':>6} {'Mean|L=0':>9} {'Mean|L=1':>9}")
        print("-" * 44)
        for ind in self.indicators:
            m0 = by_state.loc[0, ind] if 0 in by_state.index else float("nan")
            m1 = by_state.loc[1, ind] if 1 in by_state.index else float("nan")
            print(f"{ind:<10} {self.loadings[ind]:6.2f} {self.noise_sd[ind]:6.2f} "
                  f"{m0:9.2f} {m1:9.2f}")
        corr = pop[self.indicators].corr()
        print(f"\nInter-indicator correlation matrix:")
        print(f"{'':>6}", "".join(f"{s:>7}" for s in self.indicators))
        for s in self.indicators:
            print(f"{s:>6}", "".join(f"{corr.loc[s, t]:7.2f}" for t in self.indicators))


# --- Usage ---
if __name__ == "__main__":
    gen = PopulationGenerator()
    gen.validate(n=5000, seed=0)
