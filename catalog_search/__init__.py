"""Franchise-aware search over a locally cached game catalog."""

__version__ = "0.1.0"
