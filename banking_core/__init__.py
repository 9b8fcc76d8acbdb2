"""
Banking Core

Integrity core of a retail banking backend: integer-cent ledger with atomic
balance updates, encrypted PII at rest, funding-source validation, and
single-session authentication.
"""

__version__ = "1.0.0"
