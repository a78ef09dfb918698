"""catalog-mirror test suite.

Unit tests live in tests/unit, one module per component. Shared fixtures
are in conftest.py and the in-memory catalog and notifier doubles in
fakes.py.
"""
