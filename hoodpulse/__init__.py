"""HoodPulse: neighborhood nightlife picks over a text conversation."""

__version__ = "0.1.0"
