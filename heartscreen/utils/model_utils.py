"""
Model utilities for threshold sweeps and model selection.
"""

import logging
import math
import warnings
from collections.abc import Mapping
from types import MappingProxyType
from typing import Callable, Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from heartscreen.exceptions import UndefinedMetricWarning

logger = logging.getLogger(__name__)

POSITIVE_LABEL = "yes"
NEGATIVE_LABEL = "no"


def default_thresholds(step: float = 0.05) -> Tuple[float, ...]:
    """Cutoffs from 0 to 1 inclusive in steps of ``step`` (21 points by default)."""
    if not 0.0 < step <= 1.0:
        raise ValueError(f"step must be in (0, 1], got {step}")
    n_steps = int(round(1.0 / step))
    if not math.isclose(n_steps * step, 1.0, abs_tol=1e-9):
        raise ValueError(f"step {step} does not divide [0, 1] evenly")
    grid = np.round(np.linspace(0.0, 1.0, n_steps + 1), 10)
    return tuple(float(t) for t in grid)


class ThresholdMetrics(NamedTuple):
    sensitivity: float
    specificity: float
    accuracy: float


class ConfusionCounts(NamedTuple):
    tp: int
    tn: int
    fp: int
    fn: int


class EvaluationResult(Mapping):
    """Read-only mapping of threshold -> ThresholdMetrics for one model on one test set."""

    def __init__(self,
                 metrics: Dict[float, ThresholdMetrics],
                 confusion: Dict[float, ConfusionCounts]):
        self._metrics = MappingProxyType(dict(metrics))
        self._confusion = MappingProxyType(dict(confusion))

    def __getitem__(self, threshold: float) -> ThresholdMetrics:
        return self._metrics[float(threshold)]

    def __iter__(self) -> Iterator[float]:
        return iter(self._metrics)

    def __len__(self) -> int:
        return len(self._metrics)

    def __repr__(self) -> str:
        return f"EvaluationResult(thresholds={list(self._metrics)})"

    @property
    def thresholds(self) -> Tuple[float, ...]:
        return tuple(self._metrics)

    def confusion(self, threshold: float) -> ConfusionCounts:
        return self._confusion[float(threshold)]

    def to_frame(self) -> pd.DataFrame:
        rows = []
        for threshold, m in self._metrics.items():
            c = self._confusion[threshold]
            rows.append({"threshold": threshold, **m._asdict(), **c._asdict()})
        return pd.DataFrame(rows, columns=[
            "threshold", "sensitivity", "specificity", "accuracy", "tp", "tn", "fp", "fn"
        ])


def _as_positive_mask(labels) -> np.ndarray:
    """Map yes/no labels (or booleans / 0-1 integers) onto a boolean array."""
    arr = np.asarray(labels)
    if arr.dtype == bool:
        return arr
    if np.issubdtype(arr.dtype, np.number):
        if not np.isin(arr, (0, 1)).all():
            raise ValueError("Numeric labels must be 0 or 1")
        return arr == 1
    arr = arr.astype(str)
    unknown = set(np.unique(arr)) - {POSITIVE_LABEL, NEGATIVE_LABEL}
    if unknown:
        raise ValueError(f"Unrecognized labels: {sorted(unknown)}")
    return arr == POSITIVE_LABEL


def _ratio(numerator: int, denominator: int, name: str, threshold: float) -> float:
    if denominator == 0:
        warnings.warn(
            f"{name} is undefined at threshold {threshold:g} (zero denominator)",
            UndefinedMetricWarning,
            stacklevel=3,
        )
        return float("nan")
    return numerator / denominator


def evaluate(probs: Sequence[float],
             labels: Sequence,
             thresholds: Sequence[float]) -> EvaluationResult:
    """
    Sweep decision thresholds over predicted probabilities.

    A row is predicted positive when its probability is >= the threshold.
    Sensitivity and specificity are NaN (with an UndefinedMetricWarning) when
    their denominator is zero.

    Args:
        probs: Predicted probability of the positive class, one per row
        labels: True labels ("yes"/"no")
        thresholds: Ordered cutoffs in [0, 1]

    Returns:
        EvaluationResult keyed by threshold
    """
    y_proba = np.asarray(probs, dtype=float)
    actual = _as_positive_mask(labels)

    if y_proba.ndim != 1 or actual.ndim != 1:
        raise ValueError("probs and labels must be one-dimensional")
    if len(y_proba) != len(actual):
        raise ValueError(f"probs and labels differ in length ({len(y_proba)} vs {len(actual)})")
    if len(y_proba) == 0:
        raise ValueError("Cannot evaluate an empty prediction set")
    if np.isnan(y_proba).any() or (y_proba < 0).any() or (y_proba > 1).any():
        raise ValueError("Probabilities must lie in [0, 1]")

    grid = [float(t) for t in thresholds]
    if not grid:
        raise ValueError("Threshold grid is empty")

    n = len(actual)
    metrics: Dict[float, ThresholdMetrics] = {}
    confusion: Dict[float, ConfusionCounts] = {}
    for threshold in grid:
        predicted = y_proba >= threshold
        tp = int(np.sum(predicted & actual))
        tn = int(np.sum(~predicted & ~actual))
        fp = int(np.sum(predicted & ~actual))
        fn = int(np.sum(~predicted & actual))

        metrics[threshold] = ThresholdMetrics(
            sensitivity=_ratio(tp, tp + fn, "sensitivity", threshold),
            specificity=_ratio(tn, tn + fp, "specificity", threshold),
            accuracy=(tp + tn) / n,
        )
        confusion[threshold] = ConfusionCounts(tp=tp, tn=tn, fp=fp, fn=fn)

    return EvaluationResult(metrics, confusion)


class ThresholdEvaluator:
    """Evaluate models over a fixed threshold grid."""

    def __init__(self, thresholds: Optional[Sequence[float]] = None):
        self.thresholds = tuple(thresholds) if thresholds is not None else default_thresholds()

    def evaluate(self, y_true, y_proba, model_id: str = "model") -> EvaluationResult:
        result = evaluate(y_proba, y_true, self.thresholds)
        best = max(result.items(), key=lambda item: item[1].accuracy)
        logger.info(f"[{model_id}] swept {len(result)} thresholds; "
                    f"best accuracy {best[1].accuracy:.3f} at {best[0]:.2f}")
        return result


def comparison_table(results: Mapping, thresholds: Optional[Sequence[float]] = None) -> pd.DataFrame:
    """Flatten several EvaluationResults into one long table (one row per model and threshold)."""
    frames = []
    for model_id, result in results.items():
        frame = result.to_frame()
        if thresholds is not None:
            wanted = {float(t) for t in thresholds}
            frame = frame[frame["threshold"].isin(wanted)]
        frame.insert(0, "model_id", model_id)
        frames.append(frame)
    if not frames:
        return pd.DataFrame()
    return pd.concat(frames, ignore_index=True)


# =====================
# Selection
# =====================

class Selection(NamedTuple):
    model_id: str
    threshold: float
    metrics: ThresholdMetrics


class _Candidate(NamedTuple):
    model_id: str
    threshold: float
    metrics: ThresholdMetrics
    order: int


TieRule = Callable[[ThresholdMetrics, ThresholdMetrics], bool]


class MetricTolerance:
    """Two operating points are a near-tie when accuracy and specificity differ by at most ``tolerance``."""

    def __init__(self, tolerance: float = 0.02):
        if tolerance < 0:
            raise ValueError("tolerance must be non-negative")
        self.tolerance = tolerance

    def _close(self, a: float, b: float) -> bool:
        if math.isnan(a) or math.isnan(b):
            return math.isnan(a) and math.isnan(b)
        return abs(a - b) <= self.tolerance + 1e-12

    def __call__(self, leader: ThresholdMetrics, challenger: ThresholdMetrics) -> bool:
        return (self._close(leader.accuracy, challenger.accuracy)
                and self._close(leader.specificity, challenger.specificity))


def _nan_low(value: float) -> float:
    return float("-inf") if math.isnan(value) else value


def _performance_key(c: _Candidate) -> Tuple[float, float]:
    return (_nan_low(c.metrics.accuracy), _nan_low(c.metrics.specificity))


def _default_complexity(model_ids: Sequence[str], models=None) -> Dict[str, Tuple[int, int]]:
    """Complexity keys for ``model_ids`` from their variants (or fitted models)."""
    # config imports this module for default_thresholds
    from heartscreen.config import DEFAULT_VARIANTS, complexity_of

    if models is None:
        models = DEFAULT_VARIANTS
    elif isinstance(models, Mapping):
        models = models.values()
    known = {m.model_id: m for m in models}
    unknown = [model_id for model_id in model_ids if model_id not in known]
    if unknown:
        raise ValueError(f"Cannot rank models {unknown} by complexity; "
                         f"pass their variants via models= or an explicit complexity map")
    return {model_id: complexity_of(known[model_id]) for model_id in model_ids}


def select(results: Mapping,
           min_sensitivity: float,
           candidate_thresholds: Sequence[float],
           complexity: Optional[Mapping] = None,
           tie_rule: Optional[TieRule] = None,
           models=None) -> Selection:
    """
    Pick the preferred (model, threshold) pair.

    Operating points reaching ``min_sensitivity`` are ranked by accuracy, then
    specificity. ``min_sensitivity`` is a soft target: if nothing reaches it the
    points with the highest achievable sensitivity are ranked instead. Points
    that ``tie_rule`` considers tied with the leader are resolved in favour of
    the lowest ``complexity`` key.

    Without an explicit ``complexity`` map, keys are ``(family rank, number of
    predictors)`` taken from ``models`` (ModelVariants or FittedModels, as a
    sequence or a model_id mapping), defaulting to the standard variants.

    Args:
        results: model_id -> EvaluationResult
        min_sensitivity: Sensitivity the chosen point should reach
        candidate_thresholds: Thresholds eligible for selection
        complexity: model_id -> sortable key, smaller is simpler
        tie_rule: Callable(leader_metrics, other_metrics) -> bool
        models: Variants or fitted models used to derive ``complexity``

    Returns:
        Selection(model_id, threshold, metrics)

    Raises:
        ValueError: no results, no evaluated candidate threshold, or a model
            without a complexity key
    """
    if not results:
        raise ValueError("No evaluation results to select from")
    tie_rule = tie_rule or MetricTolerance()
    if complexity is None:
        complexity = _default_complexity(list(results), models)
    missing = [model_id for model_id in results if model_id not in complexity]
    if missing:
        raise ValueError(f"No complexity key for models {missing}")

    candidates: List[_Candidate] = []
    for order, (model_id, result) in enumerate(results.items()):
        for threshold in candidate_thresholds:
            threshold = float(threshold)
            if threshold in result:
                candidates.append(_Candidate(model_id, threshold, result[threshold], order))
    if not candidates:
        raise ValueError("None of the candidate thresholds were evaluated")

    eligible = [c for c in candidates
                if not math.isnan(c.metrics.sensitivity) and c.metrics.sensitivity >= min_sensitivity]
    if not eligible:
        defined = [c for c in candidates if not math.isnan(c.metrics.sensitivity)]
        if defined:
            best_sensitivity = max(c.metrics.sensitivity for c in defined)
            eligible = [c for c in defined if c.metrics.sensitivity == best_sensitivity]
            logger.warning(f"No operating point reaches sensitivity {min_sensitivity:.2f}; "
                           f"using best available {best_sensitivity:.4f}")
        else:
            eligible = candidates
            logger.warning("Sensitivity is undefined at every candidate; ranking on accuracy only")

    leader = max(eligible, key=_performance_key)
    tied = [c for c in eligible if tie_rule(leader.metrics, c.metrics)]

    def preference(c: _Candidate):
        accuracy, specificity = _performance_key(c)
        return (complexity[c.model_id], -accuracy, -specificity, c.threshold, c.order)

    chosen = min(tied, key=preference)
    if chosen.model_id != leader.model_id:
        logger.info(f"'{chosen.model_id}' preferred over near-tied '{leader.model_id}' as the simpler model")
    logger.info(f"Selected {chosen.model_id} at threshold {chosen.threshold:.2f}: "
                f"sensitivity={chosen.metrics.sensitivity:.4f}, "
                f"specificity={chosen.metrics.specificity:.4f}, "
                f"accuracy={chosen.metrics.accuracy:.4f}")
    return Selection(chosen.model_id, chosen.threshold, chosen.metrics)
