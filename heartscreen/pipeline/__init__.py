"""Pipeline stages: loading, splitting, cleaning, training and prediction."""

from .loader import load_dataset, coerce_schema
from .preprocessing import (
    HeartPreprocessor,
    DataValidator,
    preprocess,
)
from .splitting import FoldSplitter, split_dataset
from .training import FittedModel, score_fold, train, train_variants
from .prediction import predict_proba

__all__ = [
    'load_dataset',
    'coerce_schema',
    'HeartPreprocessor',
    'DataValidator',
    'preprocess',
    'FoldSplitter',
    'split_dataset',
    'FittedModel',
    'score_fold',
    'train',
    'train_variants',
    'predict_proba',
]
