# Custom exceptions for the analytics engine
from typing import Optional


class SalesPerfException(Exception):
    """Base exception for the analytics engine."""
    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class InvalidRecordException(SalesPerfException):
    """Raised when something other than a known record variant is passed in."""
    pass


class InvalidConfigurationException(SalesPerfException):
    """Raised when weights or percentiles cannot be used as given."""
    pass
