"""Utility modules for evaluation, selection and experiment tracking."""

from .model_utils import (
    EvaluationResult,
    MetricTolerance,
    Selection,
    ThresholdEvaluator,
    ThresholdMetrics,
    comparison_table,
    default_thresholds,
    evaluate,
    select,
)

__all__ = [
    'EvaluationResult',
    'MetricTolerance',
    'Selection',
    'ThresholdEvaluator',
    'ThresholdMetrics',
    'comparison_table',
    'default_thresholds',
    'evaluate',
    'select',
]
