"""
Sentinel Service

Ties screening to the ledger:
- Every transaction is classified (remote collaborator or local policy)
- The decision is recorded before any mining starts
- Non-blocked transactions are sealed on a background worker
- BLOCK-recommended transactions never enter the chain

Sealing runs on a single worker thread, so batches are sealed strictly in
submission order and the caller is never held up by Proof of Work.

The ledger is passed in by the assembling code; this module keeps no
global instance.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..blockchain.ledger import Block, Ledger
from ..config import DEFAULT_FALLBACK_THRESHOLD
from ..logging_setup import get_logger
from ..screening.classifier import (
    FraudAnalysis,
    RemoteClassifier,
    analyze_transaction,
    apply_analysis,
)
from ..screening.transaction import Transaction, TransactionStatus


logger = get_logger(__name__)


# ============================================================================
# Result Structures
# ============================================================================

@dataclass(frozen=True)
class ScreeningResult:
    """Decision for one transaction plus its pending seal, if any."""
    transaction: Transaction
    analysis: FraudAnalysis
    seal: Optional['Future[Block]'] = None

    @property
    def queued(self) -> bool:
        """True if the transaction was handed to the sealing worker."""
        return self.seal is not None

    @property
    def sealed(self) -> bool:
        """True once the seal has completed without error."""
        return (
            self.seal is not None
            and self.seal.done()
            and not self.seal.cancelled()
            and self.seal.exception() is None
        )


@dataclass(frozen=True)
class Stats:
    total_transactions: int
    total_volume: float
    flagged_count: int
    avg_risk_score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalTransactions': self.total_transactions,
            'totalVolume': self.total_volume,
            'flaggedCount': self.flagged_count,
            'avgRiskScore': self.avg_risk_score,
        }


# ============================================================================
# Sentinel Service
# ============================================================================

class SentinelService:
    """
    Screening front-end for a Ledger.

    Decisions are recorded synchronously; seals complete asynchronously
    and are reported through the returned Future.
    """

    def __init__(
        self,
        ledger: Ledger,
        classifier: Optional[RemoteClassifier] = None,
        fallback_threshold: float = DEFAULT_FALLBACK_THRESHOLD
    ):
        """
        Initialize the service.

        Args:
            ledger: The ledger that sealed records are appended to
            classifier: Remote classifier (None uses the local policy only)
            fallback_threshold: Amount above which the local policy flags
        """
        self._ledger = ledger
        self._classifier = classifier
        self._fallback_threshold = fallback_threshold
        self._history: List[Transaction] = []
        self._pending: List['Future[Block]'] = []
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[ScreeningResult], None]] = []
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sealer")
        self._closed = False

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def add_callback(self, callback: Callable[[ScreeningResult], None]) -> None:
        """Add a callback notified of every screening decision."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[ScreeningResult], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify(self, result: ScreeningResult) -> None:
        for callback in list(self._callbacks):
            try:
                callback(result)
            except Exception:
                logger.exception("Screening callback %r failed", callback)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process_transaction(self, transaction: Transaction) -> ScreeningResult:
        """
        Screen a transaction and queue it for sealing unless blocked.

        Args:
            transaction: A pending transaction

        Returns:
            The screening result; `seal` is None for blocked transactions

        Raises:
            RuntimeError: If the service has been closed
        """
        if self._closed:
            raise RuntimeError("SentinelService is closed")

        analysis = analyze_transaction(
            transaction, self._classifier, self._fallback_threshold
        )
        decided = apply_analysis(transaction, analysis)

        seal = None
        with self._lock:
            if self._closed:
                raise RuntimeError("SentinelService is closed")
            self._history.append(decided)
            if decided.status is TransactionStatus.BLOCKED:
                logger.info(
                    "Transaction %s blocked (risk %s); not sealed",
                    decided.id, analysis.risk_score
                )
            else:
                seal = self._worker.submit(self._ledger.seal, [decided.to_record()])
                self._pending.append(seal)

        result = ScreeningResult(transaction=decided, analysis=analysis, seal=seal)
        self._notify(result)
        return result

    def flush(self, timeout: Optional[float] = None) -> List[Block]:
        """
        Wait for all queued seals.

        Returns:
            Blocks sealed since the previous flush, in submission order

        Raises:
            TimeoutError: If `timeout` expires first; nothing is drained
                and the next flush reports the same seals
            Exception: The first seal failure, if any
        """
        with self._lock:
            pending, self._pending = self._pending, []
        _, not_done = wait(pending, timeout=timeout)

        if not_done:
            with self._lock:
                self._pending[:0] = pending
            raise TimeoutError(
                f"{len(not_done)} of {len(pending)} seals still running"
            )
        return [future.result() for future in pending]

    def close(self) -> None:
        """Finish queued seals and stop the worker."""
        with self._lock:
            self._closed = True
        self._worker.shutdown(wait=True)
        if self._classifier is not None:
            self._classifier.close()

    def __enter__(self) -> 'SentinelService':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    @property
    def transactions(self) -> List[Transaction]:
        """All screened transactions, in processing order."""
        with self._lock:
            return list(self._history)

    @property
    def blocked_transactions(self) -> List[Transaction]:
        return [t for t in self.transactions if t.status is TransactionStatus.BLOCKED]

    def sealed_records(self) -> List[Dict[str, Any]]:
        """Every record held by a non-genesis block."""
        return [
            record
            for block in self._ledger.chain[1:]
            for record in block.records
        ]

    def stats(self) -> Stats:
        """Aggregate figures over all screened transactions."""
        history = self.transactions
        total = len(history)
        return Stats(
            total_transactions=total,
            total_volume=sum(t.amount for t in history),
            flagged_count=sum(
                1 for t in history
                if t.status in (TransactionStatus.FLAGGED, TransactionStatus.BLOCKED)
            ),
            avg_risk_score=(
                sum(t.risk_score or 0 for t in history) / total if total else 0.0
            ),
        )

    def verify_integrity(self) -> bool:
        """Verify the underlying chain."""
        return self._ledger.verify_chain()

    def print_report(self) -> None:
        """Print screened transactions and chain summary."""
        stats = self.stats()
        print("\n" + "=" * 70)
        print("SCREENING REPORT")
        print("=" * 70)
        for tx in self.transactions:
            print(tx)
        print("=" * 70)
        print(f"Total transactions: {stats.total_transactions}")
        print(f"Total volume: {stats.total_volume:,.2f}")
        print(f"Flagged/blocked: {stats.flagged_count}")
        print(f"Average risk: {stats.avg_risk_score:.1f}")
        print(f"Chain length: {self._ledger.length}")
        print("=" * 70)
