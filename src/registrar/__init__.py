"""Registrar API - enrollment requests, curriculum fees and the enrolled-student ledger."""

__version__ = "0.1.0"
