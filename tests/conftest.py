"""Test configuration and fixtures."""

import pytest
import pandas as pd
import numpy as np
import tempfile
from pathlib import Path

from heartscreen.config import AnalysisConfig, ModelVariant
from heartscreen.data_generation.generate_heart_data import HeartDataGenerator
from heartscreen.pipeline.preprocessing import preprocess


@pytest.fixture
def raw_heart_data():
    """Small hand-written raw table covering sentinels, missing values and every code."""
    return pd.DataFrame({
        'age': [63, 67, 67, 37, 41, 56, 62, 57],
        'sex': [1, 1, 1, 1, 0, 1, 0, 0],
        'cp': [1, 4, 4, 3, 2, 2, 4, 4],
        'trestbps': [145.0, 160.0, 120.0, 130.0, 130.0, 120.0, 140.0, np.nan],
        'chol': [233.0, 286.0, 229.0, 0.0, 204.0, 236.0, 268.0, 354.0],
        'fbs': [1, 0, 0, 0, 0, 0, 0, 0],
        'restecg': [2, 2, 2, 0, 2, 0, 2, 0],
        'thalach': [150.0, 108.0, 129.0, 187.0, 172.0, 178.0, 160.0, 163.0],
        'exang': [0, 1, 1, 0, 0, 0, 0, 1],
        'oldpeak': [2.3, 1.5, 2.6, 3.5, 1.4, 0.8, 3.6, 0.6],
        'slope': [3, 2, 2, 3, 1, 1, 3, 1],
        'ca': [0, 3, 2, np.nan, 0, 0, 2, 0],
        'thal': [6, 3, 7, 3, 3, 3, 3, 3],
        'location': ['cleveland'] * 6 + ['hungary'] * 2,
        'num': [0, 2, 1, 0, 0, 0, 3, 0],
    })


@pytest.fixture(scope="session")
def generated_raw_data():
    """Synthetic raw dataset large enough for cross-validated fits."""
    generator = HeartDataGenerator(seed=42)
    return generator.generate_dataset(num_patients=300)


@pytest.fixture(scope="session")
def clean_data(generated_raw_data):
    return preprocess(generated_raw_data)


@pytest.fixture
def temp_directory():
    """Create temporary directory for testing."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def sample_config():
    """Fast configuration with tracking switched off."""
    return AnalysisConfig(
        random_seed=42,
        test_size=0.2,
        n_folds=3,
        n_estimators=25,
        variants=(
            ModelVariant("logreg_primary", "logistic_regression",
                         ("age", "sex", "cp", "trestbps", "chol", "fbs", "restecg")),
            ModelVariant("rf_primary", "random_forest",
                         ("age", "sex", "cp", "trestbps", "chol", "fbs", "restecg")),
        ),
        mlflow={'enabled': False},
    )
