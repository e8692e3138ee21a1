"""
Tests for choosing a (model, threshold) pair.
"""

import pytest

from heartscreen.config import ModelVariant, PRIMARY_PREDICTORS, EXTENDED_PREDICTORS
from heartscreen.utils.model_utils import (
    ConfusionCounts,
    EvaluationResult,
    MetricTolerance,
    ThresholdMetrics,
    select,
)

SINGLE = {'m': (0, 1)}


def _result(points):
    """Build an EvaluationResult from {threshold: (sensitivity, specificity, accuracy)}."""
    metrics = {t: ThresholdMetrics(*m) for t, m in points.items()}
    confusion = {t: ConfusionCounts(0, 0, 0, 0) for t in points}
    return EvaluationResult(metrics, confusion)


class TestSelect:

    def test_equal_sensitivity_prefers_simpler_model(self):
        results = {
            'rf_primary': _result({0.5: (0.8438, 0.7500, 0.7959)}),
            'logreg_primary': _result({0.5: (0.8438, 0.7500, 0.7959)}),
        }
        complexity = {'logreg_primary': (0, 7), 'rf_primary': (1, 7)}

        selection = select(results, 0.8, [0.5], complexity=complexity)

        assert selection.model_id == 'logreg_primary'
        assert selection.threshold == 0.5
        assert selection.metrics.sensitivity == 0.8438

    def test_near_tie_prefers_fewer_predictors(self):
        results = {
            'logreg_extended': _result({0.4: (0.85, 0.71, 0.785)}),
            'logreg_primary': _result({0.4: (0.85, 0.70, 0.780)}),
        }
        complexity = {'logreg_primary': (0, 7), 'logreg_extended': (0, 10)}
        selection = select(results, 0.8, [0.4], complexity=complexity)
        assert selection.model_id == 'logreg_primary'

    def test_clear_winner_beats_simplicity(self):
        results = {
            'logreg_primary': _result({0.5: (0.82, 0.60, 0.70)}),
            'rf_primary': _result({0.5: (0.84, 0.75, 0.80)}),
        }
        complexity = {'logreg_primary': (0, 7), 'rf_primary': (1, 7)}
        selection = select(results, 0.8, [0.5], complexity=complexity)
        assert selection.model_id == 'rf_primary'

    def test_filters_on_min_sensitivity(self):
        results = {
            'm': _result({
                0.3: (0.95, 0.50, 0.72),
                0.5: (0.85, 0.70, 0.78),
                0.7: (0.60, 0.95, 0.80),
            }),
        }
        selection = select(results, 0.8, [0.3, 0.5, 0.7], complexity=SINGLE)
        assert selection.threshold == 0.5

    def test_specificity_breaks_accuracy_tie(self):
        results = {
            'm': _result({
                0.4: (0.90, 0.60, 0.75),
                0.5: (0.85, 0.70, 0.75),
            }),
        }
        selection = select(results, 0.8, [0.4, 0.5], complexity=SINGLE,
                           tie_rule=MetricTolerance(0.0))
        assert selection.threshold == 0.5

    def test_soft_target_uses_best_available_sensitivity(self):
        results = {
            'a': _result({0.5: (0.75, 0.80, 0.78)}),
            'b': _result({0.5: (0.78, 0.60, 0.69)}),
        }
        selection = select(results, 0.8, [0.5], complexity={'a': (0, 1), 'b': (0, 1)})
        assert selection.model_id == 'b'
        assert selection.metrics.sensitivity == 0.78

    def test_only_candidate_thresholds_considered(self):
        results = {
            'm': _result({
                0.3: (0.90, 0.80, 0.85),
                0.5: (0.85, 0.70, 0.78),
            }),
        }
        selection = select(results, 0.8, [0.5], complexity=SINGLE)
        assert selection.threshold == 0.5

    def test_nan_sensitivity_never_qualifies(self):
        results = {
            'm': _result({
                0.5: (0.82, 0.60, 0.70),
                1.0: (float('nan'), 1.0, 0.9),
            }),
        }
        selection = select(results, 0.8, [0.5, 1.0], complexity=SINGLE)
        assert selection.threshold == 0.5

    def test_custom_tie_rule(self):
        results = {
            'logreg': _result({0.5: (0.85, 0.60, 0.70)}),
            'rf': _result({0.5: (0.85, 0.80, 0.80)}),
        }
        complexity = {'logreg': (0, 7), 'rf': (1, 7)}

        always_tied = select(results, 0.8, [0.5], complexity=complexity,
                             tie_rule=lambda leader, other: True)
        assert always_tied.model_id == 'logreg'

        never_tied = select(results, 0.8, [0.5], complexity=complexity,
                            tie_rule=lambda leader, other: leader == other)
        assert never_tied.model_id == 'rf'

    def test_no_results(self):
        with pytest.raises(ValueError):
            select({}, 0.8, [0.5])

    def test_no_matching_thresholds(self):
        with pytest.raises(ValueError):
            select({'m': _result({0.5: (0.9, 0.9, 0.9)})}, 0.8, [0.25], complexity=SINGLE)

    def test_unknown_complexity_key(self):
        with pytest.raises(ValueError):
            select({'m': _result({0.5: (0.9, 0.9, 0.9)})}, 0.8, [0.5], complexity={'other': (0, 1)})


class TestDefaultComplexity:
    """Near-ties resolved without an explicit complexity map."""

    def test_standard_variants_prefer_logistic_regression(self):
        results = {
            'rf_primary': _result({0.5: (0.8438, 0.7500, 0.7959)}),
            'logreg_primary': _result({0.5: (0.8438, 0.7500, 0.7959)}),
        }
        selection = select(results, 0.8, [0.5])
        assert selection.model_id == 'logreg_primary'

    def test_standard_variants_prefer_fewer_predictors(self):
        results = {
            'rf_extended': _result({0.5: (0.85, 0.71, 0.785)}),
            'rf_primary': _result({0.5: (0.85, 0.70, 0.780)}),
        }
        selection = select(results, 0.8, [0.5])
        assert selection.model_id == 'rf_primary'

    def test_models_argument(self):
        variants = [
            ModelVariant('forest', 'random_forest', PRIMARY_PREDICTORS),
            ModelVariant('linear', 'logistic_regression', EXTENDED_PREDICTORS),
        ]
        results = {
            'forest': _result({0.5: (0.85, 0.75, 0.80)}),
            'linear': _result({0.5: (0.85, 0.74, 0.79)}),
        }
        assert select(results, 0.8, [0.5], models=variants).model_id == 'linear'
        by_id = {v.model_id: v for v in variants}
        assert select(results, 0.8, [0.5], models=by_id).model_id == 'linear'

    def test_unrecognized_model_id(self):
        results = {'mystery': _result({0.5: (0.9, 0.9, 0.9)})}
        with pytest.raises(ValueError, match="mystery"):
            select(results, 0.8, [0.5])


class TestMetricTolerance:

    def test_within_tolerance(self):
        rule = MetricTolerance(0.02)
        assert rule(ThresholdMetrics(0.8, 0.70, 0.80), ThresholdMetrics(0.9, 0.71, 0.785))

    def test_outside_tolerance(self):
        rule = MetricTolerance(0.02)
        assert not rule(ThresholdMetrics(0.8, 0.70, 0.80), ThresholdMetrics(0.8, 0.70, 0.75))

    def test_nan_specificity(self):
        rule = MetricTolerance(0.02)
        nan = float('nan')
        assert rule(ThresholdMetrics(1.0, nan, 0.5), ThresholdMetrics(1.0, nan, 0.5))
        assert not rule(ThresholdMetrics(1.0, nan, 0.5), ThresholdMetrics(1.0, 0.5, 0.5))

    def test_negative_tolerance(self):
        with pytest.raises(ValueError):
            MetricTolerance(-0.1)
