# UPI Sentinel Test Suite
"""
Test suite including:
- Unit tests (digest engine, config, ledger, screening)
- Integration tests (screening service feeding the ledger)
- Tamper and rejection tests

Run with: pytest
"""
