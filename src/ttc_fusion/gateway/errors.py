"""
Exception taxonomy for the TTC fusion pipeline.

Estimator-level failures (DegenerateInputError) are local to one box pair.
Configuration failures (ConfigurationError) are fatal and raised before any
frame is processed.
"""


class FusionError(Exception):
    """Base class for all fusion pipeline errors."""


class DegenerateInputError(FusionError, ValueError):
    """An estimate is undefined: empty input set or zero denominator."""


class ConfigurationError(FusionError):
    """Calibration or pipeline configuration is malformed."""
