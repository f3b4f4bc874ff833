"""Consistency engine for relief-project budgets, funding and payments."""

__version__ = "0.1.0"
