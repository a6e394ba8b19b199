"""Cluster network parsing and validation, and DNS tracking for egress network policies."""

__version__ = "0.1.0"
__all__ = ["__version__"]