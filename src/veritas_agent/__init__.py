"""
Veritas Agent package initializer.

This package exposes the ``Investigator`` orchestrator for external usage.
Other internal modules (e.g. API, data sources) should be imported
explicitly from their respective files.
"""

from .investigator import Investigator  # noqa: F401

__all__ = ["Investigator"]
