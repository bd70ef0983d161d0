"""GRC dashboard engine: layout resolution and cross-entity analytics."""

__version__ = "0.4.0"
