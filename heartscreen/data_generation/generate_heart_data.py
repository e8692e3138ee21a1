"""
Synthetic Heart Disease Data Generator

Generates an ``hd.csv``-shaped table with raw (uncoded) values: integer codes
for the categorical columns, a ``num`` outcome that depends on the risk
factors, cholesterol sentinel zeros and scattered missing values.
"""

import argparse
import logging
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import pandas as pd
import yaml

logger = logging.getLogger(__name__)

LOCATIONS = ("cleveland", "hungary", "switzerland", "long_beach")


class HeartDataGenerator:
    """Generate synthetic patient records in the raw heart disease format."""

    def __init__(self,
                 seed: int = 42,
                 zero_chol_rate: float = 0.05,
                 missing_value_rates: Optional[Dict[str, float]] = None):
        """Initialize the generator.

        Args:
            seed: Random seed for reproducibility
            zero_chol_rate: Fraction of rows whose cholesterol is recorded as 0
            missing_value_rates: Fraction of missing values per column.
                Default: slope/ca/thal heavily missing, a few vitals sparsely missing
        """
        self.seed = seed
        self.rng = np.random.default_rng(seed)
        self.zero_chol_rate = zero_chol_rate
        self.missing_value_rates = missing_value_rates if missing_value_rates is not None else {
            'slope': 0.30,
            'ca': 0.60,
            'thal': 0.50,
            'trestbps': 0.03,
            'thalach': 0.03,
            'fbs': 0.05,
            'exang': 0.03,
            'oldpeak': 0.03,
        }

    def _risk_score(self, df: pd.DataFrame) -> np.ndarray:
        """Linear risk built from the usual clinical factors."""
        return (
            0.05 * (df['age'] - 54)
            + 0.9 * df['sex']
            + 1.2 * (df['cp'] == 4)
            + 0.01 * (df['trestbps'] - 130)
            + 0.004 * (df['chol'] - 240)
            + 0.3 * df['fbs']
            + 0.3 * (df['restecg'] > 0)
            - 0.02 * (df['thalach'] - 140)
            + 0.9 * df['exang']
            + 0.5 * df['oldpeak']
            - 2.1
        ).to_numpy(dtype=float)

    def generate_outcome(self, df: pd.DataFrame) -> np.ndarray:
        """Draw ``num`` (0-4): disease presence from the risk score, severity from its excess."""
        risk = self._risk_score(df) + self.rng.normal(0, 1.0, len(df))
        presence = self.rng.random(len(df)) < 1.0 / (1.0 + np.exp(-risk))
        severity = np.clip(np.floor(np.maximum(risk, 0) / 1.2).astype(int) + 1, 1, 4)
        return np.where(presence, severity, 0)

    def generate_dataset(self, num_patients: int = 900) -> pd.DataFrame:
        """Generate ``num_patients`` raw records."""
        n = num_patients
        rng = self.rng
        logger.info(f"Generating {n} synthetic patient records (seed={self.seed})")

        sex = rng.binomial(1, 0.7, n)
        df = pd.DataFrame({
            'age': np.clip(rng.normal(54, 9, n).round(), 28, 80).astype(int),
            'sex': sex,
            'cp': rng.choice([1, 2, 3, 4], n, p=[0.07, 0.2, 0.25, 0.48]),
            'trestbps': np.clip(rng.normal(132, 18, n).round(), 80, 200),
            'chol': np.clip(rng.normal(240, 50, n).round(), 100, 600),
            'fbs': rng.binomial(1, 0.15, n),
            'restecg': rng.choice([0, 1, 2], n, p=[0.6, 0.2, 0.2]),
            'thalach': np.clip(rng.normal(138, 25, n).round(), 60, 202),
            'exang': rng.binomial(1, 0.35, n),
            'oldpeak': np.clip(rng.normal(0.9, 1.1, n), -2.5, 6.2).round(1),
            'slope': rng.choice([1, 2, 3], n, p=[0.35, 0.5, 0.15]),
            'ca': rng.choice([0, 1, 2, 3], n, p=[0.6, 0.2, 0.13, 0.07]),
            'thal': rng.choice([3, 6, 7], n, p=[0.55, 0.05, 0.4]),
            'location': rng.choice(LOCATIONS, n, p=[0.33, 0.32, 0.13, 0.22]),
        })
        df['num'] = self.generate_outcome(df)

        # Recorded-as-zero cholesterol, as in the source collection sites
        zero_mask = rng.random(n) < self.zero_chol_rate
        df.loc[zero_mask, 'chol'] = 0

        df = self._inject_missing_values(df)
        logger.info(f"Generated dataset shape: {df.shape}, "
                    f"disease prevalence {(df['num'] > 0).mean():.3f}")
        return df

    def _inject_missing_values(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()
        for col, rate in self.missing_value_rates.items():
            if col not in df.columns or rate <= 0:
                continue
            mask = self.rng.random(len(df)) < rate
            df[col] = df[col].astype(float) if df[col].dtype.kind in 'iub' else df[col]
            df.loc[mask, col] = np.nan
        return df


def main():
    """Main function to generate data."""
    parser = argparse.ArgumentParser(description="Generate a synthetic hd.csv")
    parser.add_argument("--num_patients", type=int, default=900, help="Number of patients to generate")
    parser.add_argument("--output", type=str, default="./data/raw/hd.csv", help="Output CSV path")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--zero_chol_rate", type=float, default=0.05,
                        help="Fraction of cholesterol values recorded as 0")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)

    generator = HeartDataGenerator(seed=args.seed, zero_chol_rate=args.zero_chol_rate)
    df = generator.generate_dataset(num_patients=args.num_patients)

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=False, na_rep="?")
    logger.info(f"Data saved to {output_path}")

    summary = {
        'total_records': len(df),
        'disease_prevalence': float((df['num'] > 0).mean()),
        'num_distribution': {int(k): int(v) for k, v in df['num'].value_counts().sort_index().items()},
        'zero_cholesterol': int((df['chol'] == 0).sum()),
        'missing_values': {k: int(v) for k, v in df.isnull().sum().items() if v},
        'seed': generator.seed,
    }
    summary_path = output_path.with_name("data_summary.yaml")
    with open(summary_path, 'w') as f:
        yaml.dump(summary, f, default_flow_style=False)

    logger.info(f"Summary saved to {summary_path}")


if __name__ == "__main__":
    main()
