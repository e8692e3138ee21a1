"""
Apply fitted models to held-out data.
"""

import numpy as np
import pandas as pd

from heartscreen.exceptions import SchemaError
from heartscreen.pipeline.training import FittedModel


def predict_proba(model: FittedModel, data: pd.DataFrame) -> np.ndarray:
    """Probability of ``heart == yes`` for each row of ``data``, in input order."""
    missing = [c for c in model.predictors if c not in data.columns]
    if missing:
        raise SchemaError(f"Model '{model.model_id}' needs columns missing from data: {missing}")
    proba = model.estimator.predict_proba(data[list(model.predictors)])
    positive = list(model.estimator.classes_).index(1)
    return proba[:, positive]
