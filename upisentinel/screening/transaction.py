"""
Transaction Records

UPI payment records as they move through screening:
- Category and status enums
- Immutable Transaction with the screening outcome attached
- Conversion to the opaque record that gets sealed into the ledger
"""

import secrets
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple


DEFAULT_CURRENCY = "INR"
DEFAULT_FROM_ADDRESS = "self@upi_user"
DEFAULT_LOCATION = "New Delhi, India"
DEFAULT_DEVICE = "ANDROID-TX-SAFE-1"


class TransactionCategory(Enum):
    P2P = "P2P"
    MERCHANT = "MERCHANT"
    BILL_PAY = "BILL_PAY"
    RELOAD = "RELOAD"


class TransactionStatus(Enum):
    """Screening state of a transaction."""
    PENDING = "PENDING"
    VALIDATED = "VALIDATED"
    FLAGGED = "FLAGGED"
    BLOCKED = "BLOCKED"


def new_transaction_id() -> str:
    """Short random identifier."""
    return secrets.token_hex(4)[:7]


@dataclass(frozen=True)
class Transaction:
    """
    A UPI payment candidate.

    `to_address` is the destination VPA (UPI ID). Screening fields are
    empty until an analysis is applied.
    """
    id: str
    amount: float
    to_address: str
    category: TransactionCategory = TransactionCategory.P2P
    from_address: str = DEFAULT_FROM_ADDRESS
    currency: str = DEFAULT_CURRENCY
    location: str = DEFAULT_LOCATION
    device_fingerprint: str = DEFAULT_DEVICE
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))
    status: TransactionStatus = TransactionStatus.PENDING
    risk_score: Optional[float] = None
    fraud_analysis: Optional[str] = None
    mitigation_steps: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.id:
            raise ValueError("Transaction id cannot be empty")
        if self.amount < 0:
            raise ValueError("Transaction amount cannot be negative")
        if not self.to_address:
            raise ValueError("Destination VPA cannot be empty")

    @classmethod
    def create(
        cls,
        amount: float,
        to_address: str = "unknown@upi",
        category: TransactionCategory = TransactionCategory.P2P,
        location: Optional[str] = None,
        **kwargs: Any
    ) -> 'Transaction':
        """Build a pending transaction with a fresh id."""
        return cls(
            id=kwargs.pop('id', None) or new_transaction_id(),
            amount=amount,
            to_address=to_address or "unknown@upi",
            category=category,
            location=location or DEFAULT_LOCATION,
            **kwargs
        )

    def with_status(self, status: TransactionStatus, **changes: Any) -> 'Transaction':
        return replace(self, status=status, **changes)

    def context(self) -> Dict[str, Any]:
        """Fields sent to the classification collaborator."""
        return {
            'id': self.id,
            'toAddress': self.to_address,
            'amount': self.amount,
            'currency': self.currency,
            'category': self.category.value,
            'location': self.location,
            'deviceFingerprint': self.device_fingerprint,
        }

    def to_record(self) -> Dict[str, Any]:
        """Opaque, JSON-serializable record handed to the ledger."""
        return {
            'id': self.id,
            'timestamp': self.timestamp,
            'from': self.from_address,
            'to': self.to_address,
            'amount': self.amount,
            'currency': self.currency,
            'category': self.category.value,
            'location': self.location,
            'device': self.device_fingerprint,
            'status': self.status.value,
            'risk_score': self.risk_score,
        }

    def __str__(self) -> str:
        score = "-" if self.risk_score is None else f"{self.risk_score:g}"
        return (
            f"[{self.id}] {self.currency} {self.amount:,.2f} -> {self.to_address} "
            f"({self.category.value}) {self.status.value} risk:{score}"
        )
