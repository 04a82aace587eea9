class StratSearchError(Exception):
    """Base class for all stratsearch exceptions."""


class ConfigError(StratSearchError):
    """Raised for missing/malformed configuration."""


class DataValidationError(StratSearchError):
    """Raised when price input lacks required columns or rows."""


class AnalysisError(StratSearchError):
    """Raised when a robustness analysis is requested on unusable input."""


__all__ = [
    "StratSearchError",
    "ConfigError",
    "DataValidationError",
    "AnalysisError",
]
