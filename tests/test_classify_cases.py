import numpy as np
import pandas as pd
import pytest

from classify_cases import (
    classify_individuals,
    combination_label,
    combination_labels,
    meets_criteria,
    observed_pattern_frequencies,
    positive_column,
    satisfies_rule,
    select_cases,
    symptom_combinations,
)
from generate_population import DegenerateSampleError, PopulationGenerator
from simulation_config import INDICATORS


def _population(rows):
    return pd.DataFrame(rows, columns=INDICATORS)


def test_enumeration_is_full_power_set_in_fixed_order():
    patterns = symptom_combinations()
    assert len(patterns) == 32
    assert len(set(patterns)) == 32
    assert set(patterns) == {tuple((i >> s) & 1 for s in range(4, -1, -1)) for i in range(32)}
    assert patterns[0] == (0, 0, 0, 0, 0)
    assert patterns[-1] == (1, 1, 1, 1, 1)
    # Order is reproducible call to call
    assert symptom_combinations() == patterns


def test_labels_follow_enumeration_order():
    labels = combination_labels()
    assert labels[:3] == ["00000", "00001", "00010"]
    assert labels[-1] == "11111"
    assert all(len(label) == 5 for label in labels)
    assert combination_label((1, 0, 1, 0, 0)) == "10100"


def test_meets_criteria_counts():
    patterns = symptom_combinations()
    assert sum(meets_criteria(p, 2) for p in patterns) == 26
    assert sum(meets_criteria(p, 3) for p in patterns) == 16
    assert not meets_criteria((0, 0, 0, 0, 1), 2)
    assert meets_criteria((0, 0, 0, 1, 1), 2)


def test_threshold_is_inclusive():
    pop = _population([[2.0, 1.999, 0.0, 0.0, 4.0]])
    out = classify_individuals(pop, threshold=2.0)
    assert bool(out.loc[0, "S1_positive"]) is True
    assert bool(out.loc[0, "S2_positive"]) is False
    assert out.loc[0, "criteria_met"] == 2
    assert bool(out.loc[0, "diagnosed"]) is True


def test_classification_does_not_mutate_input():
    pop = _population([[3.0, 3.0, 3.0, 3.0, 3.0]])
    classify_individuals(pop)
    assert list(pop.columns) == INDICATORS


@pytest.mark.parametrize("k", [1, 2, 3, 5])
def test_classifier_and_pattern_rule_agree_for_every_k(k):
    pop = PopulationGenerator().generate(500, np.random.default_rng(k))
    out = classify_individuals(pop, threshold=2.0, min_criteria=k)
    pos_cols = [positive_column(ind) for ind in INDICATORS]
    patterns = out[pos_cols].astype(int).itertuples(index=False, name=None)
    expected = [meets_criteria(p, k) for p in patterns]
    assert out["diagnosed"].tolist() == expected


def test_rule_accepts_counts_and_series():
    assert satisfies_rule(2, 2)
    assert not satisfies_rule(1, 2)
    counts = pd.Series([0, 1, 2, 5])
    assert satisfies_rule(counts, 2).tolist() == [False, False, True, True]


def test_criteria_met_and_diagnosed_match_pattern_rule():
    pop = PopulationGenerator().generate(2000, np.random.default_rng(11))
    out = classify_individuals(pop, threshold=2.0, min_criteria=2)
    pos_cols = [positive_column(ind) for ind in INDICATORS]
    assert (out["criteria_met"] == (out[INDICATORS] >= 2.0).sum(axis=1)).all()
    assert (out["diagnosed"] == (out["criteria_met"] >= 2)).all()
    for _, row in out.iterrows():
        pattern = tuple(int(row[c]) for c in pos_cols)
        assert meets_criteria(pattern, 2) == bool(row["diagnosed"])


def test_select_cases_keeps_only_diagnosed():
    pop = PopulationGenerator().generate(1000, np.random.default_rng(12))
    cases = select_cases(classify_individuals(pop))
    assert len(cases) > 0
    assert cases["diagnosed"].all()
    assert (cases["criteria_met"] >= 2).all()


def test_select_cases_below_floor_raises():
    pop = _population([[3.0] * 5] * 5 + [[0.0] * 5] * 10)
    classified = classify_individuals(pop)
    with pytest.raises(DegenerateSampleError, match="only 5 diagnosed cases"):
        select_cases(classified, min_cases=6)
    assert len(select_cases(classified, min_cases=5)) == 5


def test_observed_frequencies_only_cover_criteria_patterns():
    pop = PopulationGenerator().generate(1000, np.random.default_rng(13))
    cases = select_cases(classify_individuals(pop))
    freqs = observed_pattern_frequencies(cases)
    assert freqs.shape == (32,)
    assert freqs.sum() == pytest.approx(1.0)
    for p, f in zip(symptom_combinations(), freqs):
        if not meets_criteria(p, 2):
            assert f == 0.0


def test_observed_frequencies_use_label_digit_order():
    # S1 and M positive only -> "10001"
    cases = _population([[3.0, 0.0, 0.0, 0.0, 3.0]])
    freqs = observed_pattern_frequencies(cases)
    assert freqs[combination_labels().index("10001")] == 1.0
