"""
Experiment tracking utilities using MLflow.
"""

import contextlib
import logging
import math
import time
from typing import Any, Dict, Optional

import mlflow

logger = logging.getLogger(__name__)

DEFAULT_EXPERIMENT_ID = "0"


class ExperimentTracker:
    """MLflow experiment tracking wrapper.

    Tracking is best-effort: a failed MLflow call is reported as a warning
    and never interrupts the analysis. If the tracking backend cannot be set
    up (or a run cannot be started) tracking switches itself off for the rest
    of the analysis. With ``enabled: false`` no MLflow call is made at all.
    """

    def __init__(self, config: Dict[str, Any]):
        """Initialize experiment tracker from the ``mlflow`` config section."""
        self.config = config
        self.enabled = bool(config.get('enabled', True))
        self.tracking_uri = config.get('tracking_uri', 'file:./mlruns')
        self.experiment_name = config.get('experiment_name', 'heart_disease_cutoff')

        if not self.enabled:
            logger.info("Experiment tracking disabled")
            return

        try:
            mlflow.set_tracking_uri(self.tracking_uri)
            experiment_id = self._resolve_experiment()
            if experiment_id != DEFAULT_EXPERIMENT_ID:
                mlflow.set_experiment(experiment_id=experiment_id)
            else:
                mlflow.set_experiment("Default")
        except Exception as e:
            logger.warning(f"MLflow tracking at {self.tracking_uri} unavailable, "
                           f"continuing without experiment tracking: {e}")
            self.enabled = False

    def _resolve_experiment(self) -> str:
        """Create the experiment, reuse a live one, or fall back to MLflow's default experiment."""
        try:
            return mlflow.create_experiment(self.experiment_name)
        except Exception:
            experiment = mlflow.get_experiment_by_name(self.experiment_name)
            if experiment and experiment.lifecycle_stage != "deleted":
                return experiment.experiment_id

        # Deleted or unreachable: try a timestamped name before giving up on a dedicated experiment
        new_name = f"{self.experiment_name}_{int(time.time())}"
        try:
            experiment_id = mlflow.create_experiment(new_name)
        except Exception as e:
            logger.warning(f"Could not create experiment '{new_name}', using the default experiment: {e}")
            return DEFAULT_EXPERIMENT_ID
        self.experiment_name = new_name
        return experiment_id

    def start_run(self, run_name: Optional[str] = None):
        """Start an MLflow run; a no-op context when tracking is disabled or the run cannot start."""
        if not self.enabled:
            return contextlib.nullcontext()
        try:
            return mlflow.start_run(run_name=run_name)
        except Exception as e:
            logger.warning(f"Could not start MLflow run '{run_name}', disabling tracking: {e}")
            self.enabled = False
            return contextlib.nullcontext()

    def log_params(self, params: Dict[str, Any]):
        """Log the (nested) analysis settings as flat dotted parameters."""
        if not self.enabled:
            return
        for key, value in self._flatten_dict(params).items():
            try:
                mlflow.log_param(key, value)
            except Exception as e:
                logger.warning(f"Parameter '{key}' not recorded: {e}")

    def log_metrics(self, metrics: Dict[str, float], step: Optional[int] = None):
        """Log metrics to MLflow, skipping undefined (NaN) values."""
        if not self.enabled:
            return
        for key, value in metrics.items():
            if value is None or (isinstance(value, float) and math.isnan(value)):
                continue
            try:
                mlflow.log_metric(key, value, step=step)
            except Exception as e:
                logger.warning(f"Metric '{key}' not recorded: {e}")

    def log_artifacts(self, artifact_dir: str):
        """Upload the analysis output directory."""
        if not self.enabled:
            return
        try:
            mlflow.log_artifacts(artifact_dir)
        except Exception as e:
            logger.warning(f"Artifacts in {artifact_dir} not uploaded: {e}")

    def log_dict(self, summary: Dict[str, Any], artifact_file: str):
        """Store a summary dictionary (e.g. the selection) as a YAML artifact."""
        if not self.enabled:
            return
        try:
            mlflow.log_dict(summary, artifact_file)
        except Exception as e:
            logger.warning(f"{artifact_file} not recorded: {e}")

    def log_model(self, model, model_name: str, **kwargs):
        """Log a fitted scikit-learn pipeline to MLflow."""
        if not self.enabled:
            return
        try:
            mlflow.sklearn.log_model(model, name=model_name, **kwargs)
        except Exception as e:
            logger.warning(f"Model {model_name} not recorded: {e}")

    @staticmethod
    def _flatten_dict(d: Dict[str, Any], parent: str = "") -> Dict[str, str]:
        """``{'selection': {'min_sensitivity': 0.8}}`` -> ``{'selection.min_sensitivity': '0.8'}``."""
        flat: Dict[str, str] = {}
        for key, value in d.items():
            name = f"{parent}.{key}" if parent else str(key)
            if isinstance(value, dict):
                flat.update(ExperimentTracker._flatten_dict(value, name))
            else:
                flat[name] = str(value)
        return flat
