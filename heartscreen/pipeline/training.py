"""
Model training with k-fold cross-validated hyperparameter selection.

Training is split into two composable stages: ``FoldSplitter`` produces the
fold indices and ``score_fold`` fits and scores one configuration on one fold.
``train`` combines them over the candidate grid of a model family and refits
the winner on the full training partition.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging
import time

import dask
import numpy as np
import pandas as pd
from dask.delayed import delayed
from sklearn.base import clone
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.metrics import accuracy_score
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder, StandardScaler
from sklearn.utils.validation import check_array, check_is_fitted
from tqdm import tqdm

from heartscreen.config import (
    AnalysisConfig,
    LOGISTIC_REGRESSION,
    MODEL_FAMILIES,
    RANDOM_FOREST,
    ModelVariant,
    complexity_of,
)
from heartscreen.exceptions import DegenerateDataError, SchemaError
from heartscreen.pipeline.preprocessing import TARGET_COLUMN
from heartscreen.pipeline.splitting import FoldSplitter

logger = logging.getLogger(__name__)


class VotingForestClassifier(RandomForestClassifier):
    """Random forest whose class probability is the share of trees voting for that class.

    ``RandomForestClassifier.predict_proba`` averages leaf class fractions,
    which only matches the vote share when every leaf is pure. Identical
    predictor rows with different outcomes leave impure leaves behind.
    """

    def predict_proba(self, X):
        check_is_fitted(self)
        X = check_array(X, dtype=np.float32)
        votes = np.zeros((X.shape[0], self.n_classes_))
        rows = np.arange(X.shape[0])
        # Trees are fitted on encoded targets, so predictions are class indices
        for tree in self.estimators_:
            votes[rows, tree.predict(X).astype(int)] += 1
        return votes / len(self.estimators_)


@dataclass(frozen=True)
class FittedModel:
    """A trained classifier together with the variant that produced it."""
    model_id: str
    family: str
    predictors: Tuple[str, ...]
    estimator: Pipeline
    params: Dict[str, Any] = field(default_factory=dict)
    cv_results: Tuple[Dict[str, Any], ...] = ()

    @property
    def cv_accuracy(self) -> float:
        """Mean cross-validated accuracy of the chosen configuration."""
        for result in self.cv_results:
            if result["params"] == self.params:
                return result["mean_accuracy"]
        return float("nan")


def encode_target(data: pd.DataFrame) -> np.ndarray:
    if TARGET_COLUMN not in data.columns:
        raise SchemaError(f"Target column '{TARGET_COLUMN}' not found")
    return (data[TARGET_COLUMN].astype(str) == "yes").astype(int).to_numpy()


def _observed_levels(series: pd.Series) -> List[str]:
    if isinstance(series.dtype, pd.CategoricalDtype):
        present = set(series.dropna().astype(str))
        return [str(level) for level in series.cat.categories if str(level) in present]
    return sorted(series.dropna().astype(str).unique())


def _column_groups(X: pd.DataFrame) -> Tuple[List[str], Dict[str, List[str]]]:
    numeric = [c for c in X.columns if pd.api.types.is_numeric_dtype(X[c])]
    categorical = {c: _observed_levels(X[c]) for c in X.columns if c not in numeric}
    return numeric, categorical


def build_estimator(family: str,
                    numeric: Sequence[str],
                    categorical: Dict[str, List[str]],
                    params: Optional[Dict[str, Any]] = None,
                    config: Optional[AnalysisConfig] = None) -> Pipeline:
    """Build an unfitted preprocessing + classifier pipeline for one model family."""
    params = params or {}
    config = config or AnalysisConfig()
    cat_cols = list(categorical)
    cat_levels = [np.array(levels, dtype=object) for levels in categorical.values()]

    if family == LOGISTIC_REGRESSION:
        transformers = []
        if numeric:
            transformers.append(("numeric", StandardScaler(), list(numeric)))
        if cat_cols:
            transformers.append(("categorical", OneHotEncoder(
                categories=cat_levels, drop="first", handle_unknown="ignore", sparse_output=False
            ), cat_cols))
        # No penalty: plain maximum likelihood fit
        model = LogisticRegression(penalty=None, max_iter=5000, **params)

    elif family == RANDOM_FOREST:
        transformers = []
        if numeric:
            transformers.append(("numeric", "passthrough", list(numeric)))
        if cat_cols:
            transformers.append(("categorical", OneHotEncoder(
                categories=cat_levels, handle_unknown="ignore", sparse_output=False
            ), cat_cols))
        model = VotingForestClassifier(
            n_estimators=config.n_estimators,
            bootstrap=True,
            random_state=config.random_seed,
            n_jobs=1,
            **params,
        )

    else:
        raise ValueError(f"Unknown model family: {family}")

    return Pipeline([
        ("preprocessing", ColumnTransformer(transformers, remainder="drop")),
        ("model", model),
    ])


def default_max_features_grid(n_features: int) -> Tuple[int, ...]:
    """Three candidates spread between 2 and the encoded feature count."""
    if n_features <= 1:
        return (1,)
    grid = np.floor(np.linspace(2, n_features, 3)).astype(int)
    return tuple(sorted({int(min(max(m, 1), n_features)) for m in grid}))


def candidate_params(family: str, n_features: int, config: AnalysisConfig) -> List[Dict[str, Any]]:
    if family == LOGISTIC_REGRESSION:
        return [{}]
    if config.max_features_grid:
        grid = sorted({min(max(int(m), 1), n_features) for m in config.max_features_grid})
    else:
        grid = default_max_features_grid(n_features)
    return [{"max_features": m} for m in grid]


def score_fold(estimator: Pipeline,
               X: pd.DataFrame,
               y: np.ndarray,
               train_idx: np.ndarray,
               val_idx: np.ndarray) -> float:
    """Fit a fresh copy of ``estimator`` on one fold and return validation accuracy at a 0.5 cutoff."""
    y_train = y[train_idx]
    if np.unique(y_train).size < 2:
        raise DegenerateDataError("Training fold contains a single class")
    model = clone(estimator)
    model.fit(X.iloc[train_idx], y_train)
    p_val = model.predict_proba(X.iloc[val_idx])[:, 1]
    return float(accuracy_score(y[val_idx], (p_val >= 0.5).astype(int)))


def train(data: pd.DataFrame,
          predictors: Sequence[str],
          family: str,
          folds: int = 5,
          config: Optional[AnalysisConfig] = None,
          model_id: Optional[str] = None) -> FittedModel:
    """
    Fit one model variant on a preprocessed training partition.

    Args:
        data: Preprocessed training data including the ``heart`` column
        predictors: Columns the model may use
        family: 'logistic_regression' or 'random_forest'
        folds: Number of cross-validation folds used to pick hyperparameters
        config: Seeds and forest settings
        model_id: Identifier carried into the FittedModel

    Returns:
        FittedModel refit on all of ``data`` with the best configuration
    """
    config = config or AnalysisConfig()
    predictors = tuple(predictors)
    model_id = model_id or f"{family}_{len(predictors)}"

    if family not in MODEL_FAMILIES:
        raise ValueError(f"Unknown model family: {family}")
    missing = [c for c in predictors if c not in data.columns]
    if missing:
        raise SchemaError(f"Predictors not found in data: {missing}")
    if len(data) < folds:
        raise DegenerateDataError(f"{len(data)} rows is fewer than {folds} folds")

    start_time = time.time()
    X = data[list(predictors)]
    y = encode_target(data)
    if np.unique(y).size < 2:
        raise DegenerateDataError("Training data contains a single class")

    numeric, categorical = _column_groups(X)
    n_features = len(numeric) + sum(len(levels) for levels in categorical.values())
    fold_splits = FoldSplitter(n_splits=folds, random_state=config.random_seed).split(y)
    candidates = candidate_params(family, n_features, config)

    cv_results: List[Dict[str, Any]] = []
    for params in tqdm(candidates, desc=f"{model_id} grid", leave=False, disable=len(candidates) == 1):
        estimator = build_estimator(family, numeric, categorical, params, config)
        scores = [score_fold(estimator, X, y, tr, va) for tr, va in fold_splits]
        cv_results.append({
            "params": dict(params),
            "mean_accuracy": float(np.mean(scores)),
            "std_accuracy": float(np.std(scores)),
        })
        logger.info(f"[{model_id}] params={params} cv accuracy "
                    f"{np.mean(scores):.4f} +/- {np.std(scores):.4f}")

    # max() keeps the first of equal scores, i.e. the smallest candidate
    best = max(cv_results, key=lambda r: r["mean_accuracy"])
    final = build_estimator(family, numeric, categorical, best["params"], config)
    final.fit(X, y)

    elapsed_time = time.time() - start_time
    logger.info(f"[{model_id}] trained {family} on {len(predictors)} predictors "
                f"({n_features} encoded features) in {elapsed_time:.2f} seconds; best params {best['params']}")
    return FittedModel(
        model_id=model_id,
        family=family,
        predictors=predictors,
        estimator=final,
        params=dict(best["params"]),
        cv_results=tuple(cv_results),
    )


def train_variants(data: pd.DataFrame,
                   variants: Sequence[ModelVariant],
                   config: AnalysisConfig) -> Dict[str, FittedModel]:
    """Train independent model variants in parallel on the threaded scheduler."""
    tasks = [
        delayed(train)(data, v.predictors, v.family, config.n_folds, config, v.model_id)
        for v in variants
    ]
    logger.info(f"Training {len(tasks)} model variants with dask")
    fitted = dask.compute(*tasks, scheduler="threads")
    return {model.model_id: model for model in fitted}
