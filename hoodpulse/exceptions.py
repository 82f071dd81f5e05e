"""Custom exceptions for HoodPulse."""


class HoodPulseError(Exception):
    """Base exception for all HoodPulse errors."""


class ConfigurationError(HoodPulseError):
    """Raised when the source registry or settings are invalid."""


class SourceError(HoodPulseError):
    """Raised by a source adapter that could not produce any records."""


class MalformedRecordError(HoodPulseError):
    """Raised when a raw source record cannot be normalized into an Event."""


class ClassifierError(HoodPulseError):
    """Raised when the external intent classifier fails or times out."""


class RendererError(HoodPulseError):
    """Raised when the external renderer fails or times out."""
