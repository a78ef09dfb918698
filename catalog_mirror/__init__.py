"""Incremental mirror of the Bangumi catalog into a local document store.

Usage:
    python -m catalog_mirror sync daily
    python -m catalog_mirror sync full
    python -m catalog_mirror rotation status
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
