"""
Dataset loading and schema coercion for the raw heart disease table.
"""

import logging
from pathlib import Path
from typing import Union

import pandas as pd

from heartscreen.exceptions import SchemaError

logger = logging.getLogger(__name__)

INTEGER_COLUMNS = ("age", "sex", "cp", "fbs", "restecg", "exang")
REAL_COLUMNS = ("trestbps", "chol", "thalach", "oldpeak")
REQUIRED_COLUMNS = INTEGER_COLUMNS + REAL_COLUMNS + ("num",)
OPTIONAL_COLUMNS = ("slope", "ca", "thal", "location")

MISSING_MARKERS = ["?", ""]


def _to_numeric(series: pd.Series, name: str, dtype: str) -> pd.Series:
    parsed = pd.to_numeric(series, errors="coerce")
    bad = series.notna() & parsed.isna()
    if bad.any():
        example = series[bad].iloc[0]
        raise SchemaError(f"Column '{name}' has {int(bad.sum())} non-numeric values (e.g. {example!r})")
    if dtype == "Int64":
        fractional = parsed.notna() & (parsed % 1 != 0)
        if fractional.any():
            raise SchemaError(f"Column '{name}' has {int(fractional.sum())} non-integer values")
    return parsed.astype(dtype)


def coerce_schema(df: pd.DataFrame) -> pd.DataFrame:
    """Check required columns and give them nullable dtypes so missing values stay explicit."""
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise SchemaError(f"Input is missing required columns: {missing}")

    out = df.copy()
    for col in INTEGER_COLUMNS:
        out[col] = _to_numeric(out[col], col, "Int64")
    for col in REAL_COLUMNS:
        out[col] = _to_numeric(out[col], col, "Float64")

    num = out["num"]
    if pd.api.types.is_numeric_dtype(num) or pd.to_numeric(num, errors="coerce").notna().sum() == num.notna().sum():
        out["num"] = _to_numeric(num, "num", "Int64")
    else:
        out["num"] = num.astype("string").str.strip()

    if "location" in out.columns:
        out["location"] = out["location"].astype("string").str.strip()
    return out


def load_dataset(data_path: Union[str, Path]) -> pd.DataFrame:
    """Read ``hd.csv`` (one header row, one patient per row)."""
    p = Path(data_path)
    logger.info(f"Loading data from {p}")
    df = pd.read_csv(p, na_values=MISSING_MARKERS, skipinitialspace=True)
    df.columns = [str(c).strip() for c in df.columns]
    df = coerce_schema(df)

    logger.info(f"Loaded data shape: {df.shape}")
    missing_counts = df.isnull().sum()
    missing_counts = missing_counts[missing_counts > 0]
    if not missing_counts.empty:
        logger.info(f"Missing values per column: {missing_counts.to_dict()}")
    return df
