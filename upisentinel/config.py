"""
Configuration

Ledger and screening settings with eager validation.

Defaults live in module constants; `SentinelConfig.from_env()` overlays
SENTINEL_* environment variables. Out-of-range values raise
ConfigurationError at construction, never at seal time.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional


# ============================================================================
# Constants
# ============================================================================

DEFAULT_DIFFICULTY = 2  # Leading zero hex characters required
MAX_DIFFICULTY = 6  # ~16.7M expected nonces per block
MAX_NONCE = 2 ** 32  # Safety cap on the nonce search
NONCE_CAP_FACTOR = 32  # Cap must cover this many expected searches
DEFAULT_CLASSIFIER_TIMEOUT = 10.0  # seconds
DEFAULT_FALLBACK_THRESHOLD = 80000  # INR
DEFAULT_LOG_LEVEL = "INFO"

ENV_PREFIX = "SENTINEL_"


class ConfigurationError(ValueError):
    """Raised when a setting is missing, malformed, or out of range."""


def expected_iterations(difficulty: int) -> int:
    """Expected nonce attempts for a difficulty (16 ** difficulty)."""
    return 16 ** difficulty


def validate_difficulty(difficulty: int, max_nonce: int = MAX_NONCE) -> None:
    """
    Check that a difficulty is practical under a nonce cap.

    Args:
        difficulty: Required leading zero hex characters
        max_nonce: Nonce search cap

    Raises:
        ConfigurationError: If either value is out of range
    """
    if isinstance(difficulty, bool) or not isinstance(difficulty, int):
        raise ConfigurationError(f"Difficulty must be an integer, got {difficulty!r}")
    if not 0 <= difficulty <= MAX_DIFFICULTY:
        raise ConfigurationError(
            f"Difficulty must be between 0 and {MAX_DIFFICULTY}, got {difficulty}"
        )
    if isinstance(max_nonce, bool) or not isinstance(max_nonce, int) or max_nonce < 1:
        raise ConfigurationError(f"Nonce cap must be a positive integer, got {max_nonce!r}")
    required = expected_iterations(difficulty) * NONCE_CAP_FACTOR
    if max_nonce < required:
        raise ConfigurationError(
            f"Nonce cap {max_nonce} is too small for difficulty {difficulty} "
            f"(need at least {required})"
        )


@dataclass(frozen=True)
class SentinelConfig:
    """Settings for the ledger, the classifier and logging."""
    difficulty: int = DEFAULT_DIFFICULTY
    max_nonce: int = MAX_NONCE
    classifier_url: Optional[str] = None
    classifier_api_key: Optional[str] = None
    classifier_timeout: float = DEFAULT_CLASSIFIER_TIMEOUT
    fallback_threshold: float = DEFAULT_FALLBACK_THRESHOLD
    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self):
        validate_difficulty(self.difficulty, self.max_nonce)
        if self.classifier_timeout <= 0:
            raise ConfigurationError("Classifier timeout must be positive")
        if self.fallback_threshold <= 0:
            raise ConfigurationError("Fallback threshold must be positive")
        if self.classifier_url is not None and not self.classifier_url.startswith(
            ('http://', 'https://')
        ):
            raise ConfigurationError(
                f"Classifier URL must be http(s), got {self.classifier_url!r}"
            )
        if self.log_level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ConfigurationError(f"Unknown log level {self.log_level!r}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'SentinelConfig':
        """
        Build a config from SENTINEL_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Raises:
            ConfigurationError: On malformed or out-of-range values
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            return value if value else None

        def parse(name: str, convert, default):
            raw = get(name)
            if raw is None:
                return default
            try:
                return convert(raw)
            except ValueError as exc:
                raise ConfigurationError(
                    f"{ENV_PREFIX}{name} has invalid value {raw!r}"
                ) from exc

        return cls(
            difficulty=parse('DIFFICULTY', int, DEFAULT_DIFFICULTY),
            max_nonce=parse('MAX_NONCE', int, MAX_NONCE),
            classifier_url=get('CLASSIFIER_URL'),
            classifier_api_key=get('CLASSIFIER_API_KEY'),
            classifier_timeout=parse('CLASSIFIER_TIMEOUT', float, DEFAULT_CLASSIFIER_TIMEOUT),
            fallback_threshold=parse('FALLBACK_THRESHOLD', float, DEFAULT_FALLBACK_THRESHOLD),
            log_level=get('LOG_LEVEL') or DEFAULT_LOG_LEVEL,
        )
