"""
Ledger Module

Implements an append-only, hash-chained ledger with:
- SHA-256 chaining over a canonical block encoding
- Proof of Work sealing (leading zero hex characters)
- A fixed difficulty chosen at construction
- A trusted genesis root that is exempt from Proof of Work

Integrity guarantees:
- Immutable blocks (frozen dataclass)
- Seals are serialized: every block is mined against the current tip
- Appends are atomic from a reader's point of view
- Full chain verification

The chain lives in process memory only and is rebuilt from nothing on
restart.
"""

import copy
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..config import (
    DEFAULT_DIFFICULTY,
    MAX_NONCE,
    SentinelConfig,
    validate_difficulty,
)
from ..core_crypto.digest import block_digest, block_header, digest, ensure_available
from ..logging_setup import get_logger


logger = get_logger(__name__)


# ============================================================================
# Constants
# ============================================================================

GENESIS_PREV_DIGEST = "0"  # Never a valid 64-char digest
CANCEL_CHECK_INTERVAL = 1024  # Nonces between cancellation checks


def _now_ms() -> int:
    return int(time.time() * 1000)


# ============================================================================
# Errors
# ============================================================================

class MiningExhausted(RuntimeError):
    """Raised when the nonce cap is reached without a valid digest."""


class SealCancelled(RuntimeError):
    """Raised when a seal is cancelled before a nonce is found."""


# ============================================================================
# Block Structure (Immutable)
# ============================================================================

@dataclass(frozen=True)
class Block:
    """
    Immutable sealed block.

    `digest` is derived from (records, previous_digest, created_at, nonce)
    and is never an input to its own computation.
    """
    height: int
    created_at: int  # milliseconds since epoch
    records: Tuple[Any, ...]
    previous_digest: str
    nonce: int
    digest: str

    @property
    def is_genesis(self) -> bool:
        return self.height == 0

    def compute_digest(self) -> str:
        """Recompute the digest from the block's own fields."""
        return block_digest(
            self.records, self.previous_digest, self.created_at, self.nonce
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert block to a JSON-compatible dictionary."""
        return {
            'height': self.height,
            'created_at': self.created_at,
            'records': copy.deepcopy(list(self.records)),
            'previous_digest': self.previous_digest,
            'nonce': self.nonce,
            'digest': self.digest,
        }

    def __str__(self) -> str:
        return (
            f"Block #{self.height}\n"
            f"  Digest: {self.digest[:16]}...\n"
            f"  Prev: {self.previous_digest[:16]}...\n"
            f"  Nonce: {self.nonce}\n"
            f"  Records: {len(self.records)}"
        )


# ============================================================================
# Proof of Work
# ============================================================================

class ProofOfWork:
    """
    Proof of Work with a fixed difficulty.

    Difficulty is measured in leading zero HEX CHARACTERS of the digest.
    Each extra character multiplies the expected work by 16, so large
    difficulties are rejected when the search cap cannot cover them.
    """

    def __init__(self, difficulty: int = DEFAULT_DIFFICULTY, max_nonce: int = MAX_NONCE):
        """
        Initialize PoW with given difficulty.

        Args:
            difficulty: Leading zero hex characters required
            max_nonce: Nonces to try before giving up

        Raises:
            ConfigurationError: If difficulty is impractical for max_nonce
        """
        validate_difficulty(difficulty, max_nonce)
        self.difficulty = difficulty
        self.max_nonce = max_nonce
        self._prefix = '0' * difficulty

    @property
    def prefix(self) -> str:
        return self._prefix

    def meets_difficulty(self, digest_hex: str) -> bool:
        """Check if a digest starts with the required zero run."""
        return digest_hex.startswith(self._prefix)

    @staticmethod
    def leading_zeros(digest_hex: str) -> int:
        """Count leading '0' hex characters."""
        return len(digest_hex) - len(digest_hex.lstrip('0'))

    def mine(
        self,
        records: Sequence[Any],
        previous_digest: str,
        created_at: int,
        cancel: Optional[threading.Event] = None
    ) -> Tuple[int, str]:
        """
        Search nonces 0, 1, 2, ... for the first valid digest.

        Args:
            records: Records of the block being sealed
            previous_digest: Digest of the current tip
            created_at: Timestamp fixed for the whole search
            cancel: Optional event checked every CANCEL_CHECK_INTERVAL nonces

        Returns:
            Tuple of (nonce, digest)

        Raises:
            SealCancelled: If `cancel` is set during the search
            MiningExhausted: If no valid nonce exists below max_nonce
        """
        header = block_header(records, previous_digest, created_at)
        for nonce in range(self.max_nonce):
            if cancel is not None and nonce % CANCEL_CHECK_INTERVAL == 0 and cancel.is_set():
                raise SealCancelled(f"Seal cancelled after {nonce} attempts")

            candidate = digest((header + str(nonce)).encode('utf-8'))
            if candidate.startswith(self._prefix):
                return nonce, candidate

        raise MiningExhausted(
            f"Failed to find valid nonce after {self.max_nonce} attempts"
        )


# ============================================================================
# Ledger
# ============================================================================

class Ledger:
    """
    Single-writer, in-memory, append-only chain of sealed blocks.

    One lock serializes seals so each search runs against the current tip.
    A second, short-lived lock guards the chain list itself, so readers
    never wait for a search to finish.
    """

    def __init__(
        self,
        difficulty: int = DEFAULT_DIFFICULTY,
        max_nonce: int = MAX_NONCE,
        clock: Optional[Callable[[], int]] = None
    ):
        """
        Initialize a new ledger with its genesis block.

        Args:
            difficulty: Leading zero hex characters required of sealed blocks
            max_nonce: Nonce search cap per seal
            clock: Millisecond timestamp source (defaults to wall clock)

        Raises:
            ConfigurationError: If difficulty/max_nonce are impractical
            DigestUnavailable: If SHA-256 is not available
        """
        self._pow = ProofOfWork(difficulty, max_nonce)
        self._clock = clock or _now_ms
        self._chain: List[Block] = []
        self._chain_lock = threading.Lock()
        self._seal_lock = threading.Lock()

        ensure_available()
        self._create_genesis_block()

    def _create_genesis_block(self) -> None:
        """Create the trusted root. Genesis is not mined."""
        created_at = self._clock()
        genesis = Block(
            height=0,
            created_at=created_at,
            records=(),
            previous_digest=GENESIS_PREV_DIGEST,
            nonce=0,
            digest=block_digest((), GENESIS_PREV_DIGEST, created_at, 0),
        )
        self._chain.append(genesis)
        logger.debug("Genesis block created: %s", genesis.digest)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def chain(self) -> List[Block]:
        """Snapshot of the chain (copy)."""
        with self._chain_lock:
            return list(self._chain)

    @property
    def length(self) -> int:
        with self._chain_lock:
            return len(self._chain)

    @property
    def difficulty(self) -> int:
        return self._pow.difficulty

    @property
    def max_nonce(self) -> int:
        return self._pow.max_nonce

    def get_latest(self) -> Block:
        """Return the block at the highest height."""
        with self._chain_lock:
            return self._chain[-1]

    def meets_difficulty(self, digest_hex: str) -> bool:
        return self._pow.meets_difficulty(digest_hex)

    @staticmethod
    def leading_zeros(digest_hex: str) -> int:
        return ProofOfWork.leading_zeros(digest_hex)

    # ------------------------------------------------------------------
    # Sealing
    # ------------------------------------------------------------------

    def seal(
        self,
        records: Sequence[Any],
        cancel: Optional[threading.Event] = None
    ) -> Block:
        """
        Mine a block for a batch of records and append it.

        Records are opaque JSON-serializable values; an empty batch is
        allowed. The batch is deep-copied so later changes by the caller
        cannot alter the sealed block.

        Args:
            records: Ordered batch to seal
            cancel: Optional event that aborts the search

        Returns:
            The sealed block

        Raises:
            SealCancelled: If cancelled; nothing is appended
            MiningExhausted: If the nonce cap is hit; nothing is appended
        """
        batch = tuple(copy.deepcopy(list(records)))

        with self._seal_lock:
            previous_block = self.get_latest()
            height = previous_block.height + 1
            created_at = self._clock()
            started = time.perf_counter()

            try:
                nonce, sealed_digest = self._pow.mine(
                    batch, previous_block.digest, created_at, cancel
                )
            except SealCancelled:
                logger.warning("Seal of block #%d cancelled", height)
                raise
            except MiningExhausted:
                logger.error(
                    "Nonce cap %d exhausted sealing block #%d",
                    self._pow.max_nonce, height
                )
                raise

            block = Block(
                height=height,
                created_at=created_at,
                records=batch,
                previous_digest=previous_block.digest,
                nonce=nonce,
                digest=sealed_digest,
            )

            with self._chain_lock:
                self._chain.append(block)

        logger.info(
            "Sealed block #%d: nonce=%d digest=%s... records=%d (%.3fs)",
            height, nonce, sealed_digest[:16], len(batch),
            time.perf_counter() - started
        )
        return block

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_block(self, block: Block, expected_previous_digest: str) -> bool:
        """
        Verify a single block.

        Checks that the stored digest matches a recomputation over the
        block's fields, that it meets the difficulty (genesis exempt), and
        that it links to `expected_previous_digest`.

        Returns:
            True if all checks pass
        """
        try:
            recomputed = block.compute_digest()
        except (TypeError, ValueError):
            return False

        if recomputed != block.digest:
            return False
        if not block.is_genesis and not self._pow.meets_difficulty(block.digest):
            return False
        return block.previous_digest == expected_previous_digest

    def verify_chain(self) -> bool:
        """
        Verify the entire chain from genesis.

        Returns:
            True if every block is authentic and correctly linked
        """
        chain = self.chain

        expected_previous = GENESIS_PREV_DIGEST
        for height, block in enumerate(chain):
            if block.height != height or not self.verify_block(block, expected_previous):
                logger.warning("Chain verification failed at block #%d", height)
                return False
            expected_previous = block.digest

        return True

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def to_json(self) -> str:
        """Export the chain for display."""
        return json.dumps({
            'difficulty': self.difficulty,
            'chain': [block.to_dict() for block in self.chain],
        }, indent=2)

    def print_chain(self) -> None:
        """Print the chain."""
        print(f"\nLedger (difficulty={self.difficulty}, length={self.length})")
        print("=" * 60)
        for block in self.chain:
            print(block)
            print("-" * 40)


# ============================================================================
# Convenience Functions
# ============================================================================

def create_ledger(config: Optional[SentinelConfig] = None) -> Ledger:
    """Create a ledger from a config (defaults if None)."""
    config = config or SentinelConfig()
    return Ledger(difficulty=config.difficulty, max_nonce=config.max_nonce)


def seal_records(ledger: Ledger, records: Sequence[Any]) -> Block:
    """Seal a batch of records on a ledger."""
    return ledger.seal(records)
