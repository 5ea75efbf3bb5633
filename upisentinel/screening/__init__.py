# Screening Module
"""
Transaction screening before sealing:
- UPI transaction records
- Remote fraud classification with a local fallback policy
"""

from importlib import import_module


# Lazy imports to avoid RuntimeWarning when running module directly
def __getattr__(name):
    """Lazy import to avoid circular import issues."""
    for submodule in (".transaction", ".classifier"):
        module = import_module(submodule, __name__)
        if hasattr(module, name):
            return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    'Transaction',
    'TransactionCategory',
    'TransactionStatus',
    'FraudAnalysis',
    'Recommendation',
    'RemoteClassifier',
    'ClassificationError',
    'analyze_transaction',
    'apply_analysis',
    'fallback_analysis',
]
