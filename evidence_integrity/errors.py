"""
Evidence Integrity Errors

Input and programming errors (hashing, Merkle trees, manifests) fail fast
and are never retried. Resilience errors (open circuit, exhausted retries)
describe the health of an external trust service.
"""

from typing import Optional


class EvidenceIntegrityError(Exception):
    """Base class for all evidence integrity errors."""


class HashGenerationError(EvidenceIntegrityError):
    """Raised when an artifact or metadata hash cannot be computed."""

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(message)
        self.original_error = original_error


class MerkleTreeError(EvidenceIntegrityError):
    """Raised when a Merkle tree operation fails."""


class ManifestError(EvidenceIntegrityError):
    """Raised when a hashes.json manifest is malformed."""


class CircuitOpenError(EvidenceIntegrityError):
    """Raised when a call is attempted while the service circuit is open."""

    def __init__(self, service_name: str):
        self.service_name = service_name
        super().__init__(
            f"Service {service_name} is temporarily unavailable. Try again in a few minutes."
        )


class MaxRetriesExceededError(EvidenceIntegrityError):
    """Raised when every retry attempt has failed."""

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Maximum of {attempts} attempts exceeded. Last error: {last_error}")
