"""
Heart Disease Cutoff Analysis

Fits logistic regression and random forest classifiers on the heart disease
table, sweeps the decision threshold on a held-out split, and selects a
preferred (model, threshold) pair from the sensitivity/specificity trade-off.
"""

__version__ = "1.0.0"

from .config import AnalysisConfig, ModelVariant, load_config
from .exceptions import DegenerateDataError, SchemaError, UndefinedMetricWarning
from .pipeline import (
    FittedModel,
    HeartPreprocessor,
    load_dataset,
    predict_proba,
    preprocess,
    split_dataset,
    train,
)
from .utils import EvaluationResult, Selection, evaluate, select

__all__ = [
    'AnalysisConfig',
    'ModelVariant',
    'load_config',
    'DegenerateDataError',
    'SchemaError',
    'UndefinedMetricWarning',
    'FittedModel',
    'HeartPreprocessor',
    'load_dataset',
    'predict_proba',
    'preprocess',
    'split_dataset',
    'train',
    'EvaluationResult',
    'Selection',
    'evaluate',
    'select',
]
