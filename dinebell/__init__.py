"""Live order notifications and subscription gating for the restaurant dashboard."""

__version__ = "0.1.0"
