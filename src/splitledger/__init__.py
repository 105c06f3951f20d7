"""Ledger & settlement engine for shared group expenses."""

__version__ = "0.1.0"
