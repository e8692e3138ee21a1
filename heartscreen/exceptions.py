"""
Error types raised by the heart disease analysis.
"""


class SchemaError(ValueError):
    """Input is missing an expected column or holds values of the wrong type."""


class DegenerateDataError(ValueError):
    """Data left after cleaning or splitting cannot support a model fit."""


class UndefinedMetricWarning(UserWarning):
    """A confusion-matrix denominator was zero, so the metric is reported as NaN."""
