# Integration Module
"""
Screening service that feeds approved and flagged transactions to the
ledger. Blocked transactions are recorded but never sealed.
"""

from importlib import import_module


# Lazy imports to avoid RuntimeWarning when running module directly
def __getattr__(name):
    """Lazy import to avoid circular import issues."""
    return getattr(import_module(".sentinel", __name__), name)

__all__ = [
    'ScreeningResult',
    'SentinelService',
    'Stats',
]
