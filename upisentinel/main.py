"""
UPI Sentinel - Main Entry Point
Screens sample UPI payments and seals the accepted ones into the ledger.
"""

import sys

from .blockchain.ledger import create_ledger
from .config import ConfigurationError, SentinelConfig
from .integration.sentinel import SentinelService
from .logging_setup import setup_logging
from .screening.classifier import RemoteClassifier
from .screening.transaction import Transaction, TransactionCategory


SAMPLE_TRANSACTIONS = (
    (500, "grocer@okaxis", TransactionCategory.MERCHANT, "Mumbai, India"),
    (1200, "electricity@billdesk", TransactionCategory.BILL_PAY, "Pune, India"),
    (95000, "hdfc_kyc_update@ybl", TransactionCategory.P2P, "New Delhi, India"),
)


def main() -> int:
    """Main entry point for UPI Sentinel."""
    try:
        config = SentinelConfig.from_env()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    setup_logging(config.log_level)

    ledger = create_ledger(config)
    classifier = RemoteClassifier.from_config(config)

    print("=" * 50)
    print("Welcome to UPI Sentinel")
    print("=" * 50)
    print(f"\nDifficulty: {ledger.difficulty}")
    print(f"Classifier: {config.classifier_url or 'local policy'}\n")

    with SentinelService(ledger, classifier, config.fallback_threshold) as service:
        for amount, vpa, category, location in SAMPLE_TRANSACTIONS:
            result = service.process_transaction(
                Transaction.create(amount, vpa, category, location)
            )
            print(result.transaction)
        service.flush()
        service.print_report()
        print(f"Chain valid: {service.verify_integrity()}")

    ledger.print_chain()
    return 0


if __name__ == "__main__":
    sys.exit(main())
