#!/usr/bin/env python
"""
╔══════════════════════════════════════════════════════════════════════════════╗
║                         UPI SENTINEL LIVE DEMO                                ║
║                 Fraud Screening + Proof of Work Ledger                        ║
╚══════════════════════════════════════════════════════════════════════════════╝

This script provides an interactive live demonstration of:
- SHA-256 digests and the genesis block
- Proof of Work sealing at different difficulties
- Fraud screening with the local fallback policy
- Blocked payments staying out of the chain
- Tamper detection through chain verification
"""

import dataclasses
import time

import httpx

from upisentinel.blockchain.ledger import Ledger, GENESIS_PREV_DIGEST
from upisentinel.core_crypto.digest import digest
from upisentinel.integration.sentinel import SentinelService
from upisentinel.screening.classifier import FraudAnalysis, Recommendation
from upisentinel.screening.transaction import Transaction, TransactionCategory


def print_header(title):
    """Print a formatted section header"""
    print("\n" + "═" * 70)
    print(f"  {title}")
    print("═" * 70)


def print_step(step_num, description):
    """Print a numbered step"""
    print(f"\n  [{step_num}] {description}")


def pause(message="Press ENTER to continue..."):
    """Pause for presenter to explain"""
    print(f"\n  [PAUSE] {message}")
    input()


class ScriptedClassifier:
    """Stands in for the remote collaborator: blocks KYC-style VPAs."""

    def classify(self, transaction):
        if "kyc" in transaction.to_address.lower():
            return FraudAnalysis(
                risk_score=92,
                reason="VPA impersonates a bank KYC desk",
                recommendation=Recommendation.BLOCK,
                mitigation_steps=("Do not pay. Banks never collect KYC fees over UPI.",),
                is_fraudulent=True,
                anomalies_detected=("KYC impersonation",),
            )
        raise httpx.ConnectError("classifier offline")

    def close(self):
        pass


def main():

    print("\n" * 2)
    print("╔" + "═" * 68 + "╗")
    print("║" + " " * 68 + "║")
    print("║" + "           UPI SENTINEL - PAYMENT RISK LEDGER".center(68) + "║")
    print("║" + " " * 68 + "║")
    print("╚" + "═" * 68 + "╝")

    pause("Press ENTER to begin the demonstration...")

    print_header("PART 1: DIGESTS AND GENESIS")

    print_step("1.1", "SHA-256 is deterministic")
    print(f"\n  digest(b'abc') = {digest(b'abc')}")
    print(f"  digest(b'abc') = {digest(b'abc')}")

    ledger = Ledger(difficulty=3)
    genesis = ledger.get_latest()

    print_step("1.2", "Genesis block")
    print(f"\n  Height: {genesis.height}")
    print(f"  Previous digest: {genesis.previous_digest!r} (sentinel {GENESIS_PREV_DIGEST!r})")
    print(f"  Digest: {genesis.digest}")
    print("  Genesis is a trusted root and is not mined.")

    pause()

    print_header("PART 2: PROOF OF WORK")

    for difficulty in (1, 2, 3, 4):
        scratch = Ledger(difficulty=difficulty)
        started = time.perf_counter()
        block = scratch.seal([{"id": "demo", "amount": 1}])
        elapsed = time.perf_counter() - started
        print(
            f"  difficulty={difficulty}  nonce={block.nonce:>7}  "
            f"digest={block.digest[:16]}...  {elapsed:.3f}s"
        )
    print("\n  Each extra zero multiplies the expected work by ~16.")

    pause()

    print_header("PART 3: SCREENING AND SEALING")

    payments = [
        Transaction.create(500, "grocer@okaxis", TransactionCategory.MERCHANT),
        Transaction.create(95000, "landlord@ybl", TransactionCategory.P2P),
        Transaction.create(1999, "hdfc_kyc@paytm", TransactionCategory.P2P),
    ]

    with SentinelService(ledger, ScriptedClassifier()) as service:
        for step, payment in enumerate(payments, 1):
            print_step(f"3.{step}", f"Paying {payment.amount:,.0f} to {payment.to_address}")
            result = service.process_transaction(payment)
            print(f"  Recommendation: {result.analysis.recommendation.value}")
            print(f"  Risk score: {result.analysis.risk_score}")
            print(f"  Reason: {result.analysis.reason}")
            for tip in result.analysis.mitigation_steps:
                print(f"    - {tip}")
            print(f"  Queued for sealing: {result.queued}")

        blocks = service.flush()
        print(f"\n  Sealed {len(blocks)} blocks; chain length {ledger.length}")
        service.print_report()

    pause()

    print_header("PART 4: TAMPER DETECTION")

    chain = ledger.chain
    print(f"\n  Chain valid: {ledger.verify_chain()}")

    target = chain[1]
    forged_record = dict(target.records[0], amount=1)
    forged = dataclasses.replace(target, records=(forged_record,))
    print(f"  Original block #1 verifies: {ledger.verify_block(target, chain[0].digest)}")
    print(f"  Forged block #1 verifies:   {ledger.verify_block(forged, chain[0].digest)}")

    print("\n  Demo complete.")


if __name__ == "__main__":
    main()
