"""Hybrid semantic/keyword search for multi-tenant task tracking."""

__version__ = "0.1.0"
