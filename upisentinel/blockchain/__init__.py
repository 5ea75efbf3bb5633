# Blockchain Module
"""
Hash-chained ledger implementation including:
- SHA-256 chaining over a canonical block encoding
- Proof of Work sealing with a fixed difficulty
- Trusted genesis root (not mined)

Integrity features:
- Immutable blocks (frozen dataclass)
- Serialized seals, atomic appends
- Full chain verification
"""

from importlib import import_module


# Lazy imports to avoid RuntimeWarning when running module directly
def __getattr__(name):
    """Lazy import to avoid circular import issues."""
    return getattr(import_module(".ledger", __name__), name)

__all__ = [
    'Block',
    'Ledger',
    'ProofOfWork',
    'MiningExhausted',
    'SealCancelled',
    'create_ledger',
    'seal_records',
    'GENESIS_PREV_DIGEST',
]
