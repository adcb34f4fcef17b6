"""Carrier rule engine for freight quotation."""

__version__ = "0.1.0"
