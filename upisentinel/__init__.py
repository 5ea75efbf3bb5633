# UPI Sentinel
"""
Fraud-screened UPI payments sealed into a hash-chained, Proof of Work
ledger.

Modules:
- core_crypto: SHA-256 digest engine
- blockchain: the ledger
- screening: transaction records and fraud classification
- integration: the screening service feeding the ledger
"""

__version__ = "1.0.0"
