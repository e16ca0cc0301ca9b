import json
import os

import pandas as pd
import pytest

from aggregate_combinations import SUMMARY_COLUMNS
from run_combination_simulation import main, run_simulation, save_outputs
from simulation_config import SimulationConfig


FAST_ARGS = ["--n", "400", "--reps", "3", "--seed", "5",
             "--backend", "monte_carlo", "--n_draws", "5000"]


def test_cli_writes_tables_config_and_plots(tmp_path, capsys):
    main(FAST_ARGS + ["--output_dir", str(tmp_path)])

    for name in ["combinations_summary.csv", "criteria_combinations.csv",
                 "replicate_probabilities.csv", "replicate_diagnostics.csv",
                 "run_config.json", "criteria_combinations.png",
                 "case_correlation_heatmap.png"]:
        assert (tmp_path / name).exists(), name
    assert not (tmp_path / "failures_report.csv").exists()

    summary = pd.read_csv(tmp_path / "combinations_summary.csv", dtype={"combination": str})
    assert list(summary.columns[:5]) == SUMMARY_COLUMNS
    assert len(summary) == 32
    assert summary["combination"].str.len().eq(5).all()

    criteria = pd.read_csv(tmp_path / "criteria_combinations.csv", dtype={"combination": str})
    assert criteria["meets_criteria"].all()

    matrix = pd.read_csv(tmp_path / "replicate_probabilities.csv", index_col="replicate")
    assert matrix.shape == (3, 32)

    with open(tmp_path / "run_config.json") as f:
        saved = json.load(f)
    assert saved["n"] == 400
    assert saved["seed"] == 5
    assert saved["n_failed"] == 0

    out = capsys.readouterr().out
    assert "SYMPTOM COMBINATION SUMMARY" in out
    assert "Replicates failed:      0" in out


def test_cli_no_plots(tmp_path):
    main(FAST_ARGS + ["--output_dir", str(tmp_path), "--no_plots"])
    assert (tmp_path / "combinations_summary.csv").exists()
    assert not (tmp_path / "criteria_combinations.png").exists()


def test_cli_rejects_bad_configuration_before_simulating(tmp_path, capsys):
    with pytest.raises(SystemExit) as info:
        main(["--n", "1", "--output_dir", str(tmp_path)])
    assert info.value.code == 1
    assert "Error:" in capsys.readouterr().out
    assert not os.listdir(tmp_path)


def test_cli_reports_total_failure(tmp_path, capsys):
    with pytest.raises(SystemExit) as info:
        main(FAST_ARGS + ["--n", "10", "--threshold", "3.9", "--min_criteria", "5",
                          "--output_dir", str(tmp_path)])
    assert info.value.code == 1
    assert "all 3 replicates failed" in capsys.readouterr().out


def test_failures_are_saved_when_present(tmp_path, monkeypatch):
    import aggregate_combinations as agg

    real_run = agg.run_replicate

    def flaky(cfg_, rng, index=0):
        if index == 0:
            raise agg.DegenerateSampleError("only 2 diagnosed cases")
        return real_run(cfg_, rng, index)

    monkeypatch.setattr(agg, "run_replicate", flaky)
    cfg = SimulationConfig(n=400, n_reps=2, seed=1, backend="monte_carlo",
                           n_draws=5000, failure_policy="skip")
    run, summary, criteria = run_simulation(cfg, verbose=False)
    save_outputs(cfg, run, summary, criteria, str(tmp_path), plots=False)

    failures = pd.read_csv(tmp_path / "failures_report.csv")
    assert list(failures["replicate"]) == [0]
    assert failures.loc[0, "error_type"] == "DegenerateSampleError"
