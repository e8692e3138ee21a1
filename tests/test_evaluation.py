"""
Tests for the threshold sweep.
"""

import math
import warnings

import numpy as np
import pandas as pd
import pytest

from heartscreen.exceptions import UndefinedMetricWarning
from heartscreen.utils.model_utils import (
    EvaluationResult,
    ThresholdEvaluator,
    comparison_table,
    default_thresholds,
    evaluate,
)

PROBS = [0.9, 0.4, 0.6, 0.1]
LABELS = ['yes', 'no', 'yes', 'no']


def _random_case(seed=0, n=200):
    rng = np.random.default_rng(seed)
    labels = np.where(rng.random(n) < 0.45, 'yes', 'no')
    probs = np.clip(rng.normal(0.5, 0.25, n) + 0.2 * (labels == 'yes'), 0, 1)
    return probs, labels


class TestDefaultThresholds:

    def test_twenty_one_points(self):
        grid = default_thresholds()
        assert len(grid) == 21
        assert grid[0] == 0.0
        assert grid[-1] == 1.0
        assert 0.05 in grid
        assert 0.15 in grid

    def test_custom_step(self):
        assert default_thresholds(0.25) == (0.0, 0.25, 0.5, 0.75, 1.0)

    def test_uneven_step_rejected(self):
        with pytest.raises(ValueError):
            default_thresholds(0.3)


class TestEvaluate:

    def test_example_midpoint(self):
        result = evaluate(PROBS, LABELS, [0.5])
        m = result[0.5]
        assert m.sensitivity == 1.0
        assert m.specificity == 1.0
        assert m.accuracy == 1.0
        assert result.confusion(0.5) == (2, 2, 0, 0)

    def test_example_high_cutoff(self):
        result = evaluate(PROBS, LABELS, [0.95])
        m = result[0.95]
        assert m.sensitivity == 0.0
        assert m.specificity == 1.0
        assert m.accuracy == 0.5
        c = result.confusion(0.95)
        assert (c.tp, c.fn, c.tn, c.fp) == (0, 2, 2, 0)

    def test_metrics_unpack_as_triple(self):
        sensitivity, specificity, accuracy = evaluate(PROBS, LABELS, [0.5])[0.5]
        assert (sensitivity, specificity, accuracy) == (1.0, 1.0, 1.0)

    def test_monotonic_tradeoff(self):
        probs, labels = _random_case()
        result = evaluate(probs, labels, default_thresholds())
        thresholds = sorted(result)
        for lo, hi in zip(thresholds, thresholds[1:]):
            assert result[lo].sensitivity >= result[hi].sensitivity
            assert result[lo].specificity <= result[hi].specificity

    def test_threshold_zero_predicts_all_positive(self):
        probs, labels = _random_case(seed=1)
        m = evaluate(probs, labels, [0.0])[0.0]
        assert m.sensitivity == 1.0
        assert m.specificity == 0.0

    def test_threshold_one_extremes(self):
        probs, labels = _random_case(seed=2)
        probs[0] = 1.0
        result = evaluate(probs, labels, default_thresholds())
        sens_values = [m.sensitivity for m in result.values()]
        specs = [m.specificity for m in result.values()]
        assert result[1.0].sensitivity == min(sens_values)
        assert result[1.0].specificity == max(specs)
        # probability exactly 1 still counts as positive
        c = result.confusion(1.0)
        assert c.tp + c.fp == int((probs >= 1.0).sum()) >= 1

    def test_undefined_sensitivity_is_nan(self):
        with pytest.warns(UndefinedMetricWarning):
            result = evaluate([0.2, 0.7], ['no', 'no'], [0.5])
        m = result[0.5]
        assert math.isnan(m.sensitivity)
        assert m.specificity == 0.5
        assert m.accuracy == 0.5

    def test_undefined_specificity_is_nan(self):
        with pytest.warns(UndefinedMetricWarning):
            result = evaluate([0.2, 0.7], ['yes', 'yes'], [0.0])
        assert result[0.0].sensitivity == 1.0
        assert math.isnan(result[0.0].specificity)

    def test_boolean_and_integer_labels(self):
        a = evaluate(PROBS, [True, False, True, False], [0.5])
        b = evaluate(PROBS, [1, 0, 1, 0], [0.5])
        assert a[0.5] == b[0.5] == evaluate(PROBS, LABELS, [0.5])[0.5]

    def test_categorical_labels(self):
        labels = pd.Series(pd.Categorical(LABELS, categories=['no', 'yes']))
        assert evaluate(PROBS, labels, [0.5])[0.5].accuracy == 1.0

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            evaluate([0.1, 0.2], ['yes'], [0.5])

    def test_empty_input(self):
        with pytest.raises(ValueError):
            evaluate([], [], [0.5])

    def test_probability_out_of_range(self):
        with pytest.raises(ValueError):
            evaluate([1.2, 0.1], ['yes', 'no'], [0.5])

    def test_unknown_label(self):
        with pytest.raises(ValueError):
            evaluate([0.2, 0.4], ['yes', 'maybe'], [0.5])

    def test_result_is_read_only(self):
        result = evaluate(PROBS, LABELS, [0.5])
        with pytest.raises(TypeError):
            result[0.5] = None
        assert isinstance(result, EvaluationResult)
        assert result.thresholds == (0.5,)

    def test_preserves_grid_order(self):
        result = evaluate(PROBS, LABELS, [0.9, 0.1, 0.5])
        assert list(result) == [0.9, 0.1, 0.5]

    def test_to_frame(self):
        frame = evaluate(PROBS, LABELS, [0.5, 0.95]).to_frame()
        assert list(frame.columns) == [
            'threshold', 'sensitivity', 'specificity', 'accuracy', 'tp', 'tn', 'fp', 'fn'
        ]
        assert len(frame) == 2
        assert frame.loc[1, 'fn'] == 2


class TestThresholdEvaluator:

    def test_uses_configured_grid(self):
        evaluator = ThresholdEvaluator([0.25, 0.5])
        result = evaluator.evaluate(LABELS, PROBS, model_id="m")
        assert result.thresholds == (0.25, 0.5)

    def test_default_grid(self):
        assert len(ThresholdEvaluator().thresholds) == 21


def test_comparison_table():
    results = {
        'a': evaluate(PROBS, LABELS, [0.5, 0.95]),
        'b': evaluate([0.1, 0.9, 0.2, 0.8], LABELS, [0.5, 0.95]),
    }
    table = comparison_table(results)
    assert len(table) == 4
    assert list(table['model_id'].unique()) == ['a', 'b']

    subset = comparison_table(results, thresholds=[0.5])
    assert len(subset) == 2
    assert (subset['threshold'] == 0.5).all()


if __name__ == "__main__":
    pytest.main([__file__])
