"""Inspect and verify X.509 certificate bundles."""

__version__ = "0.1.0"
