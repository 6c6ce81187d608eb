from __future__ import annotations


class SensorLoggerError(Exception):
    """Base class for every error raised by this package."""


class ParseError(SensorLoggerError):
    """Malformed topic or payload received on the message channel."""


class StorageError(SensorLoggerError):
    """The underlying database rejected or failed an operation."""


class InvalidParameter(SensorLoggerError):
    """A query parameter is outside its accepted range."""


class NotFound(SensorLoggerError):
    """A valid request matched no stored readings."""
