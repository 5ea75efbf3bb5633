"""
Unit tests for the Ledger module.

Tests:
- Proof of Work search
- Block structure
- Genesis and sealing
- Chain verification and tamper detection
- Cancellation, nonce cap and concurrent seals
"""

import dataclasses
import json
import threading

import pytest

import upisentinel.blockchain.ledger as ledger_module
from upisentinel.blockchain.ledger import (
    Block, Ledger, ProofOfWork, MiningExhausted, SealCancelled,
    create_ledger, seal_records, GENESIS_PREV_DIGEST
)
from upisentinel.config import ConfigurationError, SentinelConfig
from upisentinel.core_crypto.digest import block_digest


FIXED_TIME = 1700000000000


def fixed_clock():
    return FIXED_TIME


class TestProofOfWork:
    """Tests for Proof of Work."""

    def test_meets_difficulty(self):
        pow = ProofOfWork(difficulty=2)
        assert pow.meets_difficulty("00" + "f" * 62)
        assert pow.meets_difficulty("000" + "f" * 61)
        assert not pow.meets_difficulty("0f" + "0" * 62)

    def test_leading_zeros(self):
        assert ProofOfWork.leading_zeros("000a" + "0" * 60) == 3
        assert ProofOfWork.leading_zeros("a" * 64) == 0

    def test_difficulty_zero_accepts_first_nonce(self):
        """Any digest has at least zero leading zeros."""
        pow = ProofOfWork(difficulty=0)
        nonce, _ = pow.mine([{"id": "tx"}], GENESIS_PREV_DIGEST, FIXED_TIME)
        assert nonce == 0

    def test_mining_finds_smallest_valid_nonce(self):
        pow = ProofOfWork(difficulty=2)
        records = [{"id": "tx1", "amount": 500}]
        prev = "ab" * 32

        nonce, found = pow.mine(records, prev, FIXED_TIME)

        assert found.startswith("00")
        assert found == block_digest(records, prev, FIXED_TIME, nonce)
        for earlier in range(nonce):
            assert not block_digest(records, prev, FIXED_TIME, earlier).startswith("00")

    def test_invalid_difficulty_rejected(self):
        with pytest.raises(ConfigurationError):
            ProofOfWork(difficulty=-1)
        with pytest.raises(ConfigurationError):
            ProofOfWork(difficulty=40)

    def test_cancel_before_search(self):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(SealCancelled):
            ProofOfWork(difficulty=1).mine([], "0", FIXED_TIME, cancel)


class TestBlock:
    """Tests for Block structure."""

    def _block(self, **changes):
        fields = dict(
            height=1,
            created_at=FIXED_TIME,
            records=({"id": "tx1"},),
            previous_digest="ab" * 32,
            nonce=42,
            digest="cd" * 32,
        )
        fields.update(changes)
        return Block(**fields)

    def test_block_immutable(self):
        block = self._block()
        with pytest.raises(dataclasses.FrozenInstanceError):
            block.height = 5

    def test_block_to_dict(self):
        d = self._block().to_dict()
        assert d["height"] == 1
        assert d["nonce"] == 42
        assert d["records"] == [{"id": "tx1"}]
        assert d["previous_digest"] == "ab" * 32
        json.dumps(d)

    def test_compute_digest_ignores_stored_digest(self):
        a = self._block(digest="00" * 32)
        b = self._block(digest="ff" * 32)
        assert a.compute_digest() == b.compute_digest()

    def test_is_genesis(self):
        assert self._block(height=0).is_genesis
        assert not self._block().is_genesis


class TestLedger:
    """Tests for Ledger construction and sealing."""

    def test_genesis_block_created(self):
        ledger = Ledger(difficulty=2, clock=fixed_clock)
        genesis = ledger.get_latest()

        assert ledger.length == 1
        assert genesis.height == 0
        assert genesis.records == ()
        assert genesis.previous_digest == GENESIS_PREV_DIGEST
        assert genesis.nonce == 0
        assert genesis.created_at == FIXED_TIME
        assert genesis.digest == block_digest((), GENESIS_PREV_DIGEST, FIXED_TIME, 0)

    def test_sentinel_differs_from_real_digests(self):
        ledger = Ledger(difficulty=1)
        assert len(GENESIS_PREV_DIGEST) != len(ledger.get_latest().digest)

    def test_concrete_scenario(self):
        """Two seals at difficulty 2 link to genesis and to each other."""
        ledger = Ledger(difficulty=2)
        genesis = ledger.get_latest()

        first = ledger.seal([{"id": "tx1", "amount": 500}])
        assert first.height == 1
        assert first.previous_digest == genesis.digest
        assert first.records == ({"id": "tx1", "amount": 500},)
        assert first.digest[:2] == "00"

        second = ledger.seal([{"id": "tx2", "amount": 10}])
        assert second.height == 2
        assert second.previous_digest == first.digest
        assert second.digest[:2] == "00"

    def test_monotonic_heights(self):
        ledger = Ledger(difficulty=1)
        n = 5
        for i in range(n):
            ledger.seal([{"id": f"tx{i}"}])

        chain = ledger.chain
        assert len(chain) == n + 1
        assert [block.height for block in chain] == list(range(n + 1))

    def test_chain_linkage(self):
        ledger = Ledger(difficulty=1)
        for i in range(4):
            ledger.seal([{"id": f"tx{i}"}])

        chain = ledger.chain
        for h in range(1, len(chain)):
            assert chain[h].previous_digest == chain[h - 1].digest

    def test_proof_of_work_validity(self):
        ledger = Ledger(difficulty=2)
        for i in range(3):
            ledger.seal([{"id": f"tx{i}", "amount": i}])

        for block in ledger.chain[1:]:
            assert ledger.leading_zeros(block.digest) >= 2
            assert block.compute_digest() == block.digest

    def test_search_runs_at_positive_difficulty(self):
        """At difficulty 2 the first nonce almost never works."""
        ledger = Ledger(difficulty=2)
        nonces = [ledger.seal([{"id": f"tx{i}"}]).nonce for i in range(5)]
        assert sum(nonces) > 0

    def test_difficulty_zero_seals_immediately(self):
        ledger = Ledger(difficulty=0)
        assert ledger.seal([{"id": "tx"}]).nonce == 0

    def test_created_at_fixed_across_search(self):
        ticks = iter(range(FIXED_TIME, FIXED_TIME + 100))
        ledger = Ledger(difficulty=2, clock=lambda: next(ticks))
        block = ledger.seal([{"id": "tx1"}])
        assert block.created_at == FIXED_TIME + 1
        assert block.compute_digest() == block.digest

    def test_empty_batch_sealable(self):
        ledger = Ledger(difficulty=1)
        block = ledger.seal([])
        assert block.height == 1
        assert block.records == ()
        assert ledger.verify_chain()

    def test_records_copied_on_seal(self):
        """Mutating the caller's batch afterwards does not touch the block."""
        ledger = Ledger(difficulty=1)
        record = {"id": "tx1", "amount": 500}
        block = ledger.seal([record])

        record["amount"] = 5

        assert block.records[0]["amount"] == 500
        assert ledger.verify_chain()

    def test_chain_returns_copy(self):
        ledger = Ledger(difficulty=1)
        ledger.chain.append("junk")
        assert ledger.length == 1

    def test_invalid_difficulty_rejected(self):
        with pytest.raises(ConfigurationError):
            Ledger(difficulty=7)

    def test_nonce_cap_too_small_rejected(self):
        with pytest.raises(ConfigurationError):
            Ledger(difficulty=4, max_nonce=1000)

    def test_create_ledger_from_config(self):
        ledger = create_ledger(SentinelConfig(difficulty=1))
        assert ledger.difficulty == 1
        assert ledger.length == 1

    def test_seal_records(self):
        ledger = Ledger(difficulty=1)
        block = seal_records(ledger, [{"id": "tx1"}])
        assert ledger.get_latest() == block

    def test_to_json(self):
        ledger = Ledger(difficulty=1)
        ledger.seal([{"id": "tx1", "amount": 500}])

        data = json.loads(ledger.to_json())
        assert data["difficulty"] == 1
        assert len(data["chain"]) == 2
        assert data["chain"][1]["records"] == [{"id": "tx1", "amount": 500}]


class TestVerification:
    """Tests for block and chain verification - tampered inputs."""

    @pytest.fixture
    def ledger(self):
        ledger = Ledger(difficulty=2)
        ledger.seal([{"id": "tx1", "amount": 500}])
        ledger.seal([{"id": "tx2", "amount": 10}])
        return ledger

    def test_untampered_chain_verifies(self, ledger):
        assert ledger.verify_chain()
        chain = ledger.chain
        assert ledger.verify_block(chain[0], GENESIS_PREV_DIGEST)
        for h in range(1, len(chain)):
            assert ledger.verify_block(chain[h], chain[h - 1].digest)

    def test_genesis_exempt_from_difficulty(self):
        """Genesis verifies even when its digest has no leading zeros."""
        ledger = Ledger(difficulty=6)
        genesis = ledger.get_latest()
        if genesis.digest.startswith("0" * 6):
            pytest.skip("genesis digest happens to meet the difficulty")
        assert ledger.verify_block(genesis, GENESIS_PREV_DIGEST)

    def test_tampered_record_rejected(self, ledger):
        block = ledger.chain[1]
        forged = dataclasses.replace(block, records=({"id": "tx1", "amount": 501},))
        assert not ledger.verify_block(forged, ledger.chain[0].digest)

    def test_tampered_nonce_rejected(self, ledger):
        block = ledger.chain[1]
        forged = dataclasses.replace(block, nonce=block.nonce + 1)
        assert not ledger.verify_block(forged, ledger.chain[0].digest)

    def test_tampered_previous_digest_rejected(self, ledger):
        block = ledger.chain[2]
        forged = dataclasses.replace(block, previous_digest="00" * 32)
        assert not ledger.verify_block(forged, ledger.chain[1].digest)

    def test_wrong_expected_previous_rejected(self, ledger):
        assert not ledger.verify_block(ledger.chain[2], ledger.chain[0].digest)

    def test_recomputed_forgery_without_work_rejected(self, ledger):
        """A consistent digest that misses the difficulty fails."""
        block = ledger.chain[1]
        for nonce in range(1000):
            candidate = block_digest(block.records, block.previous_digest, block.created_at, nonce)
            if not candidate.startswith("00"):
                break
        forged = dataclasses.replace(block, nonce=nonce, digest=candidate)
        assert not ledger.verify_block(forged, ledger.chain[0].digest)

    def test_tampered_genesis_rejected(self, ledger):
        genesis = ledger.chain[0]
        forged = dataclasses.replace(genesis, records=({"id": "injected"},))
        assert not ledger.verify_block(forged, GENESIS_PREV_DIGEST)

    def test_unserializable_records_rejected(self, ledger):
        block = ledger.chain[1]
        forged = dataclasses.replace(block, records=(object(),))
        assert not ledger.verify_block(forged, ledger.chain[0].digest)

    def test_tampered_chain_detected(self, ledger):
        block = ledger.chain[1]
        ledger._chain[1] = dataclasses.replace(
            block, records=({"id": "tx1", "amount": 1},)
        )
        assert not ledger.verify_chain()

    def test_height_mismatch_detected(self, ledger):
        block = ledger.chain[2]
        ledger._chain[2] = dataclasses.replace(block, height=7)
        assert not ledger.verify_chain()


class TestSealingControl:
    """Tests for cancellation, the nonce cap and concurrent seals."""

    def test_cancelled_seal_appends_nothing(self):
        ledger = Ledger(difficulty=2)
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(SealCancelled):
            ledger.seal([{"id": "tx1"}], cancel=cancel)

        assert ledger.length == 1

    def test_cancel_during_search(self, monkeypatch):
        """Setting the event mid-search stops at the next check."""
        ledger = Ledger(difficulty=4)
        cancel = threading.Event()
        attempts = []

        def miss_then_cancel(data):
            attempts.append(data)
            if len(attempts) == 3000:
                cancel.set()
            return "f" * 64

        monkeypatch.setattr(ledger_module, "digest", miss_then_cancel)

        with pytest.raises(SealCancelled):
            ledger.seal([{"id": "tx1"}], cancel=cancel)

        assert ledger.length == 1
        assert len(attempts) == 3 * ledger_module.CANCEL_CHECK_INTERVAL

    def test_cancel_from_another_thread(self):
        ledger = Ledger(difficulty=6)
        cancel = threading.Event()
        outcome = []

        def seal():
            try:
                ledger.seal([{"id": "tx1"}], cancel=cancel)
                outcome.append("sealed")
            except SealCancelled:
                outcome.append("cancelled")

        worker = threading.Thread(target=seal)
        worker.start()
        cancel.set()
        worker.join(30)

        assert outcome == ["cancelled"]
        assert ledger.length == 1

    def test_nonce_cap_exhausted(self, monkeypatch):
        ledger = Ledger(difficulty=2)
        monkeypatch.setattr(ledger_module, "digest", lambda data: "f" * 64)
        ledger._pow.max_nonce = 50

        with pytest.raises(MiningExhausted):
            ledger.seal([{"id": "tx1"}])

        assert ledger.length == 1

    def test_concurrent_seals_serialized(self):
        """Parallel callers never mine against the same predecessor."""
        ledger = Ledger(difficulty=2)
        errors = []

        def worker(i):
            try:
                ledger.seal([{"id": f"tx{i}"}])
            except Exception as exc:  # pragma: no cover
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        chain = ledger.chain
        assert len(chain) == 9
        assert len({block.previous_digest for block in chain}) == 9
        assert ledger.verify_chain()
