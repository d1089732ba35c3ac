"""
============================================================================
Accrual Keeper v1.0.0
============================================================================

Keeper process that advances a shared accrual index once per period, using
an untrusted advisory recommendation clamped by local guardrails.

============================================================================
"""

__version__ = "1.0.0"
