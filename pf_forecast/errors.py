"""Exception types raised by the forecast package.

The computation core never raises for malformed business data; these
exceptions cover user actions that must be refused (creating a bucket past
the custom limit) and record validation at the store boundary.
"""

from __future__ import annotations


class ForecastError(Exception):
    """Base class for forecast errors."""


class AccountLimitError(ForecastError):
    """Raised when a client already has the maximum number of custom buckets."""


class InvalidAccountName(ForecastError, ValueError):
    """Raised when a bucket name does not produce a usable slug."""


class RecordError(ForecastError, ValueError):
    """Raised when a store row is missing required fields or has bad values."""
