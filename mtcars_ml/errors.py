"""
Errors raised by the mtcars_ml pipeline.
"""


class MtcarsMLError(Exception):
    """Base class for pipeline errors."""
    pass


class SchemaError(MtcarsMLError):
    """Raised when an expected column is absent or a code is outside its label set."""
    pass


class UnseenCategoryError(MtcarsMLError):
    """Raised when a categorical value was not seen while fitting a recipe."""
    pass


class FitError(MtcarsMLError):
    """Raised when a transform or model cannot be fit on the data it was given."""
    pass


class InsufficientDataError(MtcarsMLError):
    """Raised when a fold or split cannot satisfy the requested partition."""
    pass


class ConfigError(MtcarsMLError, ValueError):
    pass
