# Core Cryptography Module
"""
Digest primitives for the ledger:
- SHA-256 digest engine (cryptography backend)
- Canonical block encoding
"""
