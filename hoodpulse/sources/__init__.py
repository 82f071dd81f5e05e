"""Source package: drop-in adapters for each listing site."""

from hoodpulse.sources.base import BaseSource, SourceRegistry, merge_order

__all__ = ["BaseSource", "SourceRegistry", "merge_order"]
