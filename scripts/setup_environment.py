#!/usr/bin/env python
"""
Set up a local environment for the heart disease cutoff analysis.
"""

import subprocess
import sys
from pathlib import Path


def run_command(command, description):
    """Run a command and report failures."""
    print(f"{description}...")
    try:
        subprocess.run(command, shell=True, check=True, capture_output=True, text=True)
        print(f"{description} completed successfully")
        return True
    except subprocess.CalledProcessError as e:
        print(f"{description} failed:")
        print(f"Error: {e.stderr}")
        return False


def check_python_version():
    """Check if Python version is adequate."""
    if sys.version_info < (3, 10):
        print("Python 3.10+ is required")
        return False
    print(f"Python {sys.version_info.major}.{sys.version_info.minor} detected")
    return True


def setup_environment():
    """Install the package, create working directories and a sample dataset."""
    if not check_python_version():
        return False

    if not run_command("pip install -e .[test]", "Installing package and dependencies"):
        return False

    for directory in ["data/raw", "results", "mlruns"]:
        Path(directory).mkdir(parents=True, exist_ok=True)
        print(f"Created directory: {directory}")

    return run_command(
        "python -m heartscreen.data_generation.generate_heart_data --num_patients 900 --output data/raw/hd.csv",
        "Generating sample heart disease data"
    )


def main():
    if not setup_environment():
        print("\nSetup failed!")
        return 1

    print("\nEnvironment setup completed successfully!")
    print("\nNext steps:")
    print("1. Run: python -m heartscreen.pipeline.analysis --config config/analysis_config.yaml "
          "--data data/raw/hd.csv --output results")
    print("2. Inspect results/selection.yaml and results/evaluation.csv")
    print("3. Run MLflow UI: mlflow ui")
    print("4. Run tests: python -m pytest tests/ -v")
    return 0


if __name__ == "__main__":
    sys.exit(main())
