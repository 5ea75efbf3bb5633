"""
Fraud Classification

Client for the remote classification collaborator plus the deterministic
local policy used whenever that collaborator is unavailable.

The collaborator receives a transaction's context and answers with a risk
score (0-100), a rationale, a recommendation (APPROVE / REVIEW / BLOCK)
and remediation steps for the payer. Failures never propagate: the
caller always gets an analysis.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx

from ..config import DEFAULT_CLASSIFIER_TIMEOUT, DEFAULT_FALLBACK_THRESHOLD, SentinelConfig
from ..logging_setup import get_logger
from .transaction import Transaction, TransactionStatus


logger = get_logger(__name__)


# ============================================================================
# Constants
# ============================================================================

SCAM_PATTERNS = (
    "'Request Money' phishing: a collect request sent instead of a payment",
    "OLX/marketplace fraud: advance or 'verification' fees",
    "KYC/bank update scam: merchant names such as 'HDFC_KYC' or 'SBI_Support'",
    "Lottery/job scam: high value transfers to random individual VPAs",
    "Screen sharing fraud: device context suggestive of remote access",
)

FALLBACK_REASON = (
    "Automated baseline check: Transaction exceeds standard user threshold "
    "for this account."
)
FALLBACK_MITIGATION_STEPS = (
    "Verify the recipient's legal name on the UPI app before entering PIN.",
    "Never enter your UPI PIN to receive money.",
    "Check if the recipient VPA has been reported on CyberCrime.gov.in",
)
FALLBACK_HIGH_RISK = 65
FALLBACK_LOW_RISK = 15


class ClassificationError(ValueError):
    """Raised when the collaborator returns an unusable payload."""


class Recommendation(Enum):
    APPROVE = "APPROVE"
    REVIEW = "REVIEW"
    BLOCK = "BLOCK"


_STATUS_FOR = {
    Recommendation.APPROVE: TransactionStatus.VALIDATED,
    Recommendation.REVIEW: TransactionStatus.FLAGGED,
    Recommendation.BLOCK: TransactionStatus.BLOCKED,
}


# ============================================================================
# Analysis Result
# ============================================================================

@dataclass(frozen=True)
class FraudAnalysis:
    """Outcome of classifying one transaction."""
    risk_score: float
    reason: str
    recommendation: Recommendation
    mitigation_steps: Tuple[str, ...]
    is_fraudulent: bool = False
    anomalies_detected: Tuple[str, ...] = ()
    fallback: bool = False

    @property
    def status(self) -> TransactionStatus:
        return _STATUS_FOR[self.recommendation]

    @classmethod
    def from_payload(cls, payload: Any) -> 'FraudAnalysis':
        """
        Validate and parse a collaborator response.

        Args:
            payload: Decoded JSON object (camelCase keys)

        Raises:
            ClassificationError: If a field is missing or out of range
        """
        if not isinstance(payload, Mapping):
            raise ClassificationError("Classifier response must be a JSON object")

        score = payload.get('riskScore')
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ClassificationError(f"riskScore must be a number, got {score!r}")
        if not 0 <= score <= 100:
            raise ClassificationError(f"riskScore out of range: {score}")

        reason = payload.get('reason')
        if not isinstance(reason, str):
            raise ClassificationError("reason must be a string")

        try:
            recommendation = Recommendation(payload.get('recommendation'))
        except ValueError as exc:
            raise ClassificationError(
                f"Unknown recommendation {payload.get('recommendation')!r}"
            ) from exc

        steps = _string_list(payload, 'mitigationSteps', required=True)
        anomalies = _string_list(payload, 'anomaliesDetected', required=False)

        is_fraudulent = payload.get('isFraudulent', False)
        if not isinstance(is_fraudulent, bool):
            raise ClassificationError("isFraudulent must be a boolean")

        return cls(
            risk_score=score,
            reason=reason,
            recommendation=recommendation,
            mitigation_steps=steps,
            is_fraudulent=is_fraudulent,
            anomalies_detected=anomalies,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'isFraudulent': self.is_fraudulent,
            'riskScore': self.risk_score,
            'reason': self.reason,
            'anomaliesDetected': list(self.anomalies_detected),
            'recommendation': self.recommendation.value,
            'mitigationSteps': list(self.mitigation_steps),
        }


def _string_list(payload: Mapping, key: str, required: bool) -> Tuple[str, ...]:
    value = payload.get(key)
    if value is None and not required:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ClassificationError(f"{key} must be a list of strings")
    return tuple(value)


# ============================================================================
# Local Policy
# ============================================================================

def fallback_analysis(
    transaction: Transaction,
    threshold: float = DEFAULT_FALLBACK_THRESHOLD
) -> FraudAnalysis:
    """
    Deterministic amount-threshold policy.

    Amounts above `threshold` are sent to REVIEW; everything else is
    approved. The policy never blocks.
    """
    high = transaction.amount > threshold
    return FraudAnalysis(
        risk_score=FALLBACK_HIGH_RISK if high else FALLBACK_LOW_RISK,
        reason=FALLBACK_REASON,
        recommendation=Recommendation.REVIEW if high else Recommendation.APPROVE,
        mitigation_steps=FALLBACK_MITIGATION_STEPS,
        is_fraudulent=high,
        anomalies_detected=("Abnormal Volume",) if high else (),
        fallback=True,
    )


# ============================================================================
# Remote Classifier
# ============================================================================

class RemoteClassifier:
    """
    HTTP client for the classification collaborator.

    POSTs the transaction context as JSON and expects a FraudAnalysis
    object back. Transport errors surface as httpx.HTTPError, bad payloads
    as ClassificationError.
    """

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_CLASSIFIER_TIMEOUT,
        client: Optional[httpx.Client] = None
    ):
        """
        Args:
            url: Classification endpoint
            api_key: Optional bearer token
            timeout: Request timeout in seconds
            client: Pre-built httpx client (tests inject a MockTransport)
        """
        self.url = url
        headers = {'Accept': 'application/json'}
        if api_key:
            headers['Authorization'] = f"Bearer {api_key}"
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = headers

    @classmethod
    def from_config(cls, config: SentinelConfig) -> Optional['RemoteClassifier']:
        """Build a classifier, or None when no URL is configured."""
        if not config.classifier_url:
            return None
        return cls(
            config.classifier_url,
            api_key=config.classifier_api_key,
            timeout=config.classifier_timeout,
        )

    def classify(self, transaction: Transaction) -> FraudAnalysis:
        """
        Classify one transaction.

        Raises:
            httpx.HTTPError: On transport failure, timeout or non-2xx status
            ClassificationError: On an empty or malformed response
        """
        response = self._client.post(
            self.url,
            json={
                'transaction': transaction.context(),
                'context': list(SCAM_PATTERNS),
            },
            headers=self._headers,
        )
        response.raise_for_status()

        if not response.content:
            raise ClassificationError("Empty response from classifier")
        try:
            payload = response.json()
        except ValueError as exc:
            raise ClassificationError("Classifier response is not JSON") from exc
        return FraudAnalysis.from_payload(payload)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> 'RemoteClassifier':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


# ============================================================================
# Convenience Functions
# ============================================================================

def analyze_transaction(
    transaction: Transaction,
    classifier: Optional[RemoteClassifier] = None,
    fallback_threshold: float = DEFAULT_FALLBACK_THRESHOLD
) -> FraudAnalysis:
    """
    Classify a transaction, falling back to the local policy on failure.

    Never raises for collaborator errors; the fallback result is returned
    instead and the failure is logged.
    """
    if classifier is None:
        return fallback_analysis(transaction, fallback_threshold)

    try:
        return classifier.classify(transaction)
    except (httpx.HTTPError, ClassificationError) as exc:
        logger.warning(
            "Classifier failed for %s, using local policy: %s", transaction.id, exc
        )
        return fallback_analysis(transaction, fallback_threshold)


def apply_analysis(transaction: Transaction, analysis: FraudAnalysis) -> Transaction:
    """Attach an analysis to a transaction and set its status."""
    return transaction.with_status(
        analysis.status,
        risk_score=analysis.risk_score,
        fraud_analysis=analysis.reason,
        mitigation_steps=analysis.mitigation_steps,
    )
