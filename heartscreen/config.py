"""
Analysis configuration.

All knobs that influence a run (seeds, split proportion, fold count,
threshold grid, selection criteria and the model variants to fit) live in one
immutable ``AnalysisConfig`` that is passed explicitly to every step.
"""

from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union
import logging

import yaml

from heartscreen.utils.model_utils import default_thresholds

logger = logging.getLogger(__name__)

LOGISTIC_REGRESSION = "logistic_regression"
RANDOM_FOREST = "random_forest"
MODEL_FAMILIES = (LOGISTIC_REGRESSION, RANDOM_FOREST)

PRIMARY_PREDICTORS = ("age", "sex", "cp", "trestbps", "chol", "fbs", "restecg")
EXTENDED_PREDICTORS = PRIMARY_PREDICTORS + ("thalach", "exang", "oldpeak")


@dataclass(frozen=True)
class ModelVariant:
    """One candidate model: a family fitted on a fixed predictor set."""
    model_id: str
    family: str
    predictors: Tuple[str, ...]

    def __post_init__(self):
        if self.family not in MODEL_FAMILIES:
            raise ValueError(f"Unknown model family: {self.family}")
        if not self.predictors:
            raise ValueError(f"Variant '{self.model_id}' has no predictors")
        object.__setattr__(self, "predictors", tuple(self.predictors))


DEFAULT_VARIANTS = (
    ModelVariant("logreg_primary", LOGISTIC_REGRESSION, PRIMARY_PREDICTORS),
    ModelVariant("logreg_extended", LOGISTIC_REGRESSION, EXTENDED_PREDICTORS),
    ModelVariant("rf_primary", RANDOM_FOREST, PRIMARY_PREDICTORS),
    ModelVariant("rf_extended", RANDOM_FOREST, EXTENDED_PREDICTORS),
)


def complexity_of(model) -> Tuple[int, int]:
    """Sort key for structural simplicity: linear before forest, then fewer predictors.

    Accepts anything with ``family`` and ``predictors`` (a ModelVariant or a FittedModel).
    """
    return (MODEL_FAMILIES.index(model.family), len(model.predictors))


@dataclass(frozen=True)
class AnalysisConfig:
    """Immutable settings threaded through splitting, training and selection."""
    random_seed: int = 42
    test_size: float = 0.2
    n_folds: int = 5
    thresholds: Tuple[float, ...] = field(default_factory=default_thresholds)
    min_sensitivity: float = 0.80
    tie_tolerance: float = 0.02
    n_estimators: int = 500
    max_features_grid: Optional[Tuple[int, ...]] = None
    variants: Tuple[ModelVariant, ...] = DEFAULT_VARIANTS
    mlflow: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not 0.0 < self.test_size < 1.0:
            raise ValueError(f"test_size must be in (0, 1), got {self.test_size}")
        if self.n_folds < 2:
            raise ValueError(f"n_folds must be at least 2, got {self.n_folds}")
        if not 0.0 <= self.min_sensitivity <= 1.0:
            raise ValueError(f"min_sensitivity must be in [0, 1], got {self.min_sensitivity}")
        if self.tie_tolerance < 0:
            raise ValueError("tie_tolerance must be non-negative")
        if self.n_estimators < 1:
            raise ValueError("n_estimators must be positive")
        thresholds = tuple(float(t) for t in self.thresholds)
        if not thresholds:
            raise ValueError("threshold grid is empty")
        if any(t < 0.0 or t > 1.0 for t in thresholds):
            raise ValueError(f"thresholds must lie in [0, 1], got {thresholds}")
        object.__setattr__(self, "thresholds", thresholds)
        if self.max_features_grid is not None:
            object.__setattr__(self, "max_features_grid", tuple(int(m) for m in self.max_features_grid))
        ids = [v.model_id for v in self.variants]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate model ids in variants: {ids}")

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AnalysisConfig":
        """Build a config from the nested dict layout used in the YAML file."""
        split_cfg = raw.get("split", {})
        cv_cfg = raw.get("cross_validation", {})
        threshold_cfg = raw.get("threshold", {})
        selection_cfg = raw.get("selection", {})
        forest_cfg = raw.get("random_forest", {})

        kwargs: Dict[str, Any] = {}
        if "random_seed" in raw:
            kwargs["random_seed"] = int(raw["random_seed"])
        if "test_size" in split_cfg:
            kwargs["test_size"] = float(split_cfg["test_size"])
        if "n_splits" in cv_cfg:
            kwargs["n_folds"] = int(cv_cfg["n_splits"])
        if "grid" in threshold_cfg:
            kwargs["thresholds"] = tuple(threshold_cfg["grid"])
        elif "step" in threshold_cfg:
            kwargs["thresholds"] = default_thresholds(float(threshold_cfg["step"]))
        if "min_sensitivity" in selection_cfg:
            kwargs["min_sensitivity"] = float(selection_cfg["min_sensitivity"])
        if "tie_tolerance" in selection_cfg:
            kwargs["tie_tolerance"] = float(selection_cfg["tie_tolerance"])
        if "n_estimators" in forest_cfg:
            kwargs["n_estimators"] = int(forest_cfg["n_estimators"])
        if forest_cfg.get("max_features_grid"):
            kwargs["max_features_grid"] = tuple(forest_cfg["max_features_grid"])
        if raw.get("models"):
            kwargs["variants"] = tuple(
                ModelVariant(m["id"], m["family"], tuple(m["predictors"]))
                for m in raw["models"]
            )
        if "mlflow" in raw:
            kwargs["mlflow"] = dict(raw["mlflow"] or {})
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-python view for YAML dumps and parameter logging."""
        data = asdict(self)
        data["thresholds"] = list(self.thresholds)
        data["max_features_grid"] = list(self.max_features_grid) if self.max_features_grid else None
        data["variants"] = [
            {"id": v.model_id, "family": v.family, "predictors": list(v.predictors)}
            for v in self.variants
        ]
        return data


def load_config(config_path: Union[str, Path]) -> AnalysisConfig:
    """Read a YAML configuration file."""
    with open(config_path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    config = AnalysisConfig.from_dict(raw)
    logger.info(f"Loaded configuration from {config_path} "
                f"({len(config.variants)} model variants, {len(config.thresholds)} thresholds)")
    return config
