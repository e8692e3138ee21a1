"""
Main Analysis Pipeline
"""

from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import joblib
import numpy as np
import pandas as pd
import yaml
from sklearn.metrics import roc_auc_score

from heartscreen.config import AnalysisConfig, load_config
from heartscreen.pipeline.loader import load_dataset
from heartscreen.pipeline.prediction import predict_proba
from heartscreen.pipeline.preprocessing import DataValidator, TARGET_COLUMN, preprocess
from heartscreen.pipeline.splitting import split_dataset
from heartscreen.pipeline.training import FittedModel, encode_target, train_variants
from heartscreen.utils.experiment_tracking import ExperimentTracker
from heartscreen.utils.model_utils import (
    EvaluationResult,
    MetricTolerance,
    Selection,
    ThresholdEvaluator,
    comparison_table,
    select,
)

logger = logging.getLogger(__name__)


def _plain(obj):
    """Convert numpy scalars/arrays and tuples to native Python types for YAML."""
    if isinstance(obj, dict):
        return {k: _plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_plain(v) for v in obj]
    if hasattr(obj, 'item'):
        return obj.item()
    if hasattr(obj, 'tolist'):
        return obj.tolist()
    return obj


class HeartDiseaseAnalysis:
    """Split, clean, fit, sweep cutoffs and select a model for the heart disease table."""

    def __init__(self, config: AnalysisConfig):
        self.config = config
        self.models: Dict[str, FittedModel] = {}
        self.results: Dict[str, EvaluationResult] = {}
        self.test_metrics: Dict[str, Dict[str, float]] = {}
        self.selection: Optional[Selection] = None

        self.experiment_tracker = ExperimentTracker(config.mlflow)
        self.threshold_evaluator = ThresholdEvaluator(config.thresholds)

    # ---------- Data ----------
    def load_data(self, data_path: str) -> pd.DataFrame:
        df = load_dataset(data_path)
        if "num" in df.columns:
            prev = float((~df["num"].astype(str).isin(["0", "v0"])).mean())
            logger.info(f"Raw heart disease prevalence: {prev:.3f}")
        return df

    def validate_data(self, df: pd.DataFrame) -> Dict[str, List[str]]:
        logger.info("Validating data quality...")
        validator = DataValidator()
        validator.setup_heart_rules()
        violations = validator.validate(df)
        if violations:
            logger.warning(f"Found {len(violations)} data quality issues")
            for feature, messages in violations.items():
                logger.warning(f"  {feature}: {'; '.join(messages)}")
        else:
            logger.info("Data validation passed")
        return violations

    # ---------- Splits ----------
    def split_data(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
        return split_dataset(df, self.config)

    def prepare(self, train_raw: pd.DataFrame, test_raw: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """Preprocess each partition independently."""
        return preprocess(train_raw), preprocess(test_raw)

    # ---------- Training ----------
    def train_models(self, train_df: pd.DataFrame) -> Dict[str, FittedModel]:
        logger.info("Starting model training...")
        self.models = train_variants(train_df, self.config.variants, self.config)
        return self.models

    # ---------- Evaluation ----------
    def evaluate_models(self, test_df: pd.DataFrame) -> Dict[str, EvaluationResult]:
        logger.info("Evaluating models on the test partition...")
        if not self.models:
            raise ValueError("Models not trained yet")

        labels = test_df[TARGET_COLUMN]
        y_true = encode_target(test_df)
        for model_id, model in self.models.items():
            y_proba = predict_proba(model, test_df)
            self.results[model_id] = self.threshold_evaluator.evaluate(labels, y_proba, model_id=model_id)

            metrics = {"cv_accuracy": model.cv_accuracy}
            if np.unique(y_true).size == 2:
                metrics["roc_auc"] = float(roc_auc_score(y_true, y_proba))
            self.test_metrics[model_id] = metrics
        return self.results

    def select_model(self) -> Selection:
        if not self.results:
            raise ValueError("Models not evaluated yet")
        self.selection = select(
            self.results,
            min_sensitivity=self.config.min_sensitivity,
            candidate_thresholds=self.config.thresholds,
            models=self.models,
            tie_rule=MetricTolerance(self.config.tie_tolerance),
        )
        return self.selection

    # ---------- Artifacts ----------
    def selection_summary(self) -> Dict[str, Any]:
        if self.selection is None:
            raise ValueError("No model selected yet")
        model = self.models[self.selection.model_id]
        return _plain({
            "model_id": self.selection.model_id,
            "family": model.family,
            "predictors": list(model.predictors),
            "params": model.params,
            "threshold": self.selection.threshold,
            "confusion": self.results[self.selection.model_id].confusion(self.selection.threshold)._asdict(),
            **self.selection.metrics._asdict(),
        })

    def save_artifacts(self, output_dir: str) -> Path:
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        logger.info(f"Saving artifacts to {out}")

        for model_id, model in self.models.items():
            joblib.dump(model, out / f"{model_id}.joblib")

        table = comparison_table(self.results)
        table.to_csv(out / "evaluation.csv", index=False)

        cv_results = {
            model_id: {
                "family": model.family,
                "predictors": list(model.predictors),
                "best_params": model.params,
                "candidates": list(model.cv_results),
                **self.test_metrics.get(model_id, {}),
            }
            for model_id, model in self.models.items()
        }
        (out / "cv_results.yaml").write_text(yaml.dump(_plain(cv_results)), encoding="utf-8")
        (out / "analysis_config.yaml").write_text(yaml.dump(_plain(self.config.to_dict())), encoding="utf-8")
        if self.selection is not None:
            (out / "selection.yaml").write_text(yaml.dump(self.selection_summary()), encoding="utf-8")

        logger.info("Artifacts saved successfully")
        return out

    def _log_run(self, output_dir: str):
        self.experiment_tracker.log_params(self.config.to_dict())
        for model_id, metrics in self.test_metrics.items():
            self.experiment_tracker.log_metrics({f"{model_id}.{k}": v for k, v in metrics.items()})
            for step, (threshold, m) in enumerate(self.results[model_id].items()):
                self.experiment_tracker.log_metrics(
                    {f"{model_id}.{name}": value for name, value in m._asdict().items()}, step=step
                )
        if self.selection is not None:
            self.experiment_tracker.log_dict(self.selection_summary(), "selection.yaml")
        self.experiment_tracker.log_artifacts(output_dir)
        for model_id, model in self.models.items():
            self.experiment_tracker.log_model(model.estimator, model_id)

    # ---------- Orchestration ----------
    def run(self, data_path: str, output_dir: str) -> Selection:
        logger.info("Starting heart disease cutoff analysis...")
        start_time = time.time()

        with self.experiment_tracker.start_run("heart_disease_cutoff"):
            df = self.load_data(data_path)
            self.validate_data(df)

            train_raw, test_raw = self.split_data(df)
            train_df, test_df = self.prepare(train_raw, test_raw)

            self.train_models(train_df)
            self.evaluate_models(test_df)
            selection = self.select_model()

            self.save_artifacts(output_dir)
            self._log_run(output_dir)

        elapsed_time = time.time() - start_time
        logger.info(f"Analysis completed in {elapsed_time:.2f} seconds")
        logger.info(f"Selected model: {selection.model_id} at cutoff {selection.threshold:.2f} "
                    f"(sensitivity {selection.metrics.sensitivity:.4f}, "
                    f"specificity {selection.metrics.specificity:.4f}, "
                    f"accuracy {selection.metrics.accuracy:.4f})")
        return selection


# =====================
# CLI entrypoint
# =====================

def main():
    parser = argparse.ArgumentParser(description="Fit candidate heart disease models and choose a cutoff")
    parser.add_argument("--config", type=str, default=None, help="Path to analysis configuration file")
    parser.add_argument("--data", type=str, required=True, help="Path to hd.csv")
    parser.add_argument("--output", type=str, default="./results", help="Output directory for artifacts")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    config = load_config(args.config) if args.config else AnalysisConfig()
    analysis = HeartDiseaseAnalysis(config)
    selection = analysis.run(args.data, args.output)

    print(f"Selected {selection.model_id} at threshold {selection.threshold:.2f}. Artifacts in: {args.output}")


if __name__ == "__main__":
    main()
