"""
Data preprocessing: sentinel repair, incomplete-row removal, categorical recoding
and target derivation, plus rule-based validation of raw records.
"""

import pandas as pd
import numpy as np
import logging
import time
from typing import Dict, List, Tuple
from sklearn.base import BaseEstimator, TransformerMixin

from heartscreen.exceptions import DegenerateDataError, SchemaError

logger = logging.getLogger(__name__)

TARGET_COLUMN = "heart"
OUTCOME_COLUMN = "num"
EXCLUDED_COLUMNS = ("slope", "ca", "thal")

SEX_CODES = {"0": "female", "1": "male"}
FBS_CODES = {"0": "false", "1": "true"}
EXANG_CODES = {"0": "no", "1": "yes"}
CP_CODES = {
    "1": "typical_angina",
    "2": "atypical_angina",
    "3": "non_anginal_pain",
    "4": "asymptomatic",
}
RESTECG_CODES = {"0": "normal", "1": "st_t_abnormality", "2": "lv_hypertrophy"}
NUM_CODES = {str(i): f"v{i}" for i in range(5)}

CATEGORICAL_CODES = {
    "sex": SEX_CODES,
    "cp": CP_CODES,
    "fbs": FBS_CODES,
    "restecg": RESTECG_CODES,
    "exang": EXANG_CODES,
}
INTEGER_FEATURES = ("age",)
REAL_FEATURES = ("trestbps", "chol", "thalach", "oldpeak")


def _code_key(value) -> str:
    """Normalize a raw code so 1, 1.0 and "1" look the same."""
    if isinstance(value, (bool, np.bool_)):
        return str(int(value))
    if isinstance(value, (int, np.integer)):
        return str(int(value))
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value).strip()


def _recode(series: pd.Series, codes: Dict[str, str], name: str, ordered: bool = False) -> pd.Series:
    """Map raw codes onto labels; labels already present map to themselves."""
    levels = list(dict.fromkeys(codes.values()))
    lookup = {**codes, **{label: label for label in levels}}
    keys = pd.Series([_code_key(v) for v in series], index=series.index, dtype=object)
    recoded = keys.map(lookup)
    unknown = sorted(keys[recoded.isna()].unique())
    if unknown:
        raise SchemaError(f"Column '{name}' has unrecognized codes: {unknown[:5]}")
    return pd.Series(pd.Categorical(recoded, categories=levels, ordered=ordered),
                     index=series.index, name=name)


class HeartPreprocessor(BaseEstimator, TransformerMixin):
    """Clean a raw heart disease table into a complete, labelled dataset.

    Steps (order matters):
      1. drop ``slope``, ``ca`` and ``thal``
      2. treat ``chol == 0`` as missing
      3. drop rows with any missing value
      4. recode categorical columns from raw codes to labels
      5. derive ``heart`` (yes iff ``num != v0``)

    The transformer is stateless, so the train and test partitions can be
    cleaned independently. Running it on its own output changes nothing.
    """

    def fit(self, X: pd.DataFrame, y=None):
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        start_time = time.time()
        logger.info(f"Preprocessing {len(X)} rows...")

        required = list(CATEGORICAL_CODES) + [OUTCOME_COLUMN]
        missing = [c for c in required if c not in X.columns]
        if missing:
            raise SchemaError(f"Missing required columns: {missing}")

        df = X.drop(columns=[c for c in EXCLUDED_COLUMNS if c in X.columns])

        if "chol" in df.columns:
            chol = pd.to_numeric(df["chol"]).astype("Float64")
            sentinel = (chol == 0).fillna(False).astype(bool)
            n_sentinel = int(sentinel.sum())
            if n_sentinel:
                logger.info(f"Treating {n_sentinel} zero cholesterol values as missing")
            df["chol"] = chol.mask(sentinel)

        n_before = len(df)
        df = df.dropna(how="any").reset_index(drop=True)
        logger.info(f"Dropped {n_before - len(df)} incomplete rows, {len(df)} remain")
        if df.empty:
            raise DegenerateDataError("No complete rows left after removing missing values")

        for col in INTEGER_FEATURES:
            if col in df.columns:
                df[col] = pd.to_numeric(df[col]).astype("int64")
        for col in REAL_FEATURES:
            if col in df.columns:
                df[col] = pd.to_numeric(df[col]).astype("float64")

        for col, codes in CATEGORICAL_CODES.items():
            df[col] = _recode(df[col], codes, col)
        if "location" in df.columns:
            df["location"] = df["location"].astype(str).astype("category")
        df[OUTCOME_COLUMN] = _recode(df[OUTCOME_COLUMN], NUM_CODES, OUTCOME_COLUMN, ordered=True)

        df[TARGET_COLUMN] = pd.Categorical(
            np.where(df[OUTCOME_COLUMN] == "v0", "no", "yes"), categories=["no", "yes"]
        )

        elapsed_time = time.time() - start_time
        prevalence = float((df[TARGET_COLUMN] == "yes").mean())
        logger.info(f"Preprocessing completed in {elapsed_time:.2f} seconds "
                    f"(heart disease prevalence {prevalence:.3f})")
        return df


def preprocess(raw: pd.DataFrame) -> pd.DataFrame:
    """Run the full cleaning sequence on one partition."""
    return HeartPreprocessor().fit_transform(raw)


class DataValidator:
    """Plausibility checks on the raw heart disease table, run before cleaning.

    Each column carries a list of ``(rule_type, params)`` rules. ``validate``
    reports a message per broken rule; nothing is modified or dropped here.
    """

    RULE_TYPES = ("range", "categorical", "sentinel", "missing_rate")

    def __init__(self):
        self.validation_rules: Dict[str, List[Tuple[str, Dict]]] = {}

    def add_rule(self, feature: str, rule_type: str, **params):
        if rule_type not in self.RULE_TYPES:
            raise ValueError(f"Unknown rule type '{rule_type}'")
        self.validation_rules.setdefault(feature, []).append((rule_type, params))

    def validate(self, df: pd.DataFrame) -> Dict[str, List[str]]:
        """Return ``{column: [messages]}`` for every column breaking at least one rule."""
        violations = {}
        for feature, rules in self.validation_rules.items():
            if feature not in df.columns:
                continue
            messages = [m for rule_type, params in rules
                        for m in self._check(df[feature], rule_type, params)]
            if messages:
                violations[feature] = messages
        return violations

    @staticmethod
    def _check(column: pd.Series, rule_type: str, params: Dict) -> List[str]:
        if rule_type == "range":
            values = pd.to_numeric(column, errors="coerce")
            messages = []
            low, high = params.get("min"), params.get("max")
            below = int((values < low).sum()) if low is not None else 0
            above = int((values > high).sum()) if high is not None else 0
            if below:
                messages.append(f"{below} values below plausible minimum {low}")
            if above:
                messages.append(f"{above} values above plausible maximum {high}")
            return messages

        if rule_type == "categorical":
            allowed = {_code_key(v) for v in params.get("allowed_values", [])}
            n = sum(_code_key(v) not in allowed for v in column.dropna())
            return [f"{n} values outside the known codes"] if n else []

        if rule_type == "sentinel":
            sentinel = params.get("value", 0)
            n = int((pd.to_numeric(column, errors="coerce") == sentinel).sum())
            return [f"{n} sentinel values {sentinel} (treated as missing)"] if n else []

        # missing_rate
        limit = params.get("max_rate", 0.1)
        rate = column.isnull().mean()
        return [f"{rate:.2%} missing, above the {limit:.2%} limit"] if rate > limit else []

    def setup_heart_rules(self):
        """Setup validation rules for the heart disease table."""
        self.add_rule('age', 'range', min=1, max=120)
        self.add_rule('trestbps', 'range', min=50, max=250)
        self.add_rule('chol', 'range', min=0, max=700)
        self.add_rule('chol', 'sentinel', value=0)
        self.add_rule('thalach', 'range', min=40, max=250)
        self.add_rule('oldpeak', 'range', min=-5, max=10)

        for feature, codes in CATEGORICAL_CODES.items():
            allowed = list(codes) + list(codes.values())
            self.add_rule(feature, 'categorical', allowed_values=allowed)
        self.add_rule('num', 'categorical', allowed_values=list(NUM_CODES) + list(NUM_CODES.values()))

        for feature in ['age', 'sex', 'num']:
            self.add_rule(feature, 'missing_rate', max_rate=0.01)
        for feature in ['slope', 'ca', 'thal']:
            self.add_rule(feature, 'missing_rate', max_rate=0.3)
