"""
Train/test partitioning and k-fold index splitting.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple
import logging

import numpy as np
import pandas as pd
from sklearn.model_selection import KFold, StratifiedKFold, train_test_split

from heartscreen.config import AnalysisConfig
from heartscreen.exceptions import DegenerateDataError, SchemaError

logger = logging.getLogger(__name__)


def _outcome_strata(df: pd.DataFrame) -> Optional[pd.Series]:
    """Stratify on the raw ``num`` level, or on disease presence when a level is too rare."""
    if "num" not in df.columns:
        raise SchemaError("Cannot stratify: column 'num' is missing")
    strata = df["num"].astype(str).str.strip()
    if strata.value_counts().min() >= 2:
        return strata

    logger.warning("Some 'num' levels have fewer than 2 rows; stratifying on disease presence instead")
    presence = (~strata.isin(["0", "v0"])).astype(int)
    if presence.value_counts().min() >= 2 and presence.nunique() == 2:
        return presence
    logger.warning("Outcome classes too small to stratify; using a plain random split")
    return None


def split_dataset(df: pd.DataFrame, config: AnalysisConfig) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Split the raw table once into train/test partitions, stratified by outcome."""
    strata = _outcome_strata(df)
    train_df, test_df = train_test_split(
        df,
        test_size=config.test_size,
        random_state=config.random_seed,
        stratify=strata,
    )
    logger.info(f"Split {len(df)} rows into {len(train_df)} train / {len(test_df)} test "
                f"(test_size={config.test_size}, seed={config.random_seed})")
    return train_df.reset_index(drop=True), test_df.reset_index(drop=True)


@dataclass(frozen=True)
class FoldSplitter:
    """Partition row indices into ``n_splits`` non-overlapping validation folds.

    Folds are stratified on the labels when every class has at least
    ``n_splits`` rows, otherwise rows are shuffled into plain k folds.
    Each row appears in exactly one validation fold.
    """
    n_splits: int = 5
    random_state: int = 42

    def split(self, y) -> List[Tuple[np.ndarray, np.ndarray]]:
        y = np.asarray(y)
        n_rows = len(y)
        if self.n_splits < 2:
            raise ValueError(f"n_splits must be at least 2, got {self.n_splits}")
        if n_rows < self.n_splits:
            raise DegenerateDataError(f"{n_rows} rows cannot be split into {self.n_splits} folds")

        _, counts = np.unique(y, return_counts=True)
        if len(counts) > 1 and counts.min() >= self.n_splits:
            splitter = StratifiedKFold(n_splits=self.n_splits, shuffle=True, random_state=self.random_state)
        else:
            splitter = KFold(n_splits=self.n_splits, shuffle=True, random_state=self.random_state)

        return [(train_idx, val_idx) for train_idx, val_idx in splitter.split(np.zeros(n_rows), y)]
