"""Exceptions raised by fire_enrich."""


class FireEnrichError(Exception):
    """Base class for package errors."""


class SessionStateError(FireEnrichError):
    """A controller was used in a way its lifecycle does not allow."""


class InvalidEmailError(FireEnrichError, ValueError):
    """A single-entry email address is missing or malformed."""


class ConfigError(FireEnrichError):
    """A configuration file could not be read or failed validation."""
