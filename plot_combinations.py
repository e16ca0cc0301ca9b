"""
Plots for the symptom-combination simulation:
  1. Bar chart of criteria-meeting combinations (mean probability, ±1 SD)
  2. Mean within-case correlation heatmap of the five indicators
"""

import os

import matplotlib.pyplot as plt
import numpy as np
import seaborn as sns


# ── 1. Criteria-meeting combinations ────────────────────────────────────────
def plot_criteria_combinations(criteria, output_dir, filename="criteria_combinations.png"):
    """Bars in table order (descending mean), x labels are the ranks."""
    fig, ax = plt.subplots(figsize=(12, 5))
    x = np.arange(len(criteria))
    sd = criteria["sd_probability"].fillna(0.0).to_numpy()
    ax.bar(
        x, criteria["mean_probability"], yerr=sd, capsize=3,
        color="#5C6BC0", edgecolor="white", linewidth=0.5,
        error_kw={"elinewidth": 1, "ecolor": "#333333"},
    )
    ax.set_xticks(x)
    ax.set_xticklabels(criteria["rank"].astype(str))
    ax.set_xlabel("Symptom combination (rank)")
    ax.set_ylabel("Probability")
    ax.set_ylim(bottom=0)
    n_reps = int(criteria["n_replicates"].iloc[0]) if "n_replicates" in criteria and len(criteria) else 0
    ax.set_title(f"Combinations meeting diagnostic criteria (mean ± SD over {n_reps} replicates)",
                 fontsize=13)
    fig.tight_layout()
    path = os.path.join(output_dir, filename)
    fig.savefig(path, dpi=150)
    plt.close(fig)
    print(f"Saved: {path}")
    return path


# ── 2. Within-case correlations ─────────────────────────────────────────────
def plot_case_correlation_heatmap(corr, output_dir, filename="case_correlation_heatmap.png"):
    fig, ax = plt.subplots(figsize=(6, 5))
    mask = np.triu(np.ones_like(corr, dtype=bool), k=1)
    sns.heatmap(
        corr, mask=mask, annot=True, fmt=".2f", cmap="RdBu_r",
        vmin=-1, vmax=1, center=0, square=True, linewidths=0.5,
        ax=ax,
    )
    ax.set_title("Indicator correlations among cases (replicate mean)", fontsize=12, pad=10)
    fig.tight_layout()
    path = os.path.join(output_dir, filename)
    fig.savefig(path, dpi=150)
    plt.close(fig)
    print(f"Saved: {path}")
    return path
