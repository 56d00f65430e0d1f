"""SLUICE: Stream deployment orchestration with live status aggregation."""

__version__ = "0.1.0"
