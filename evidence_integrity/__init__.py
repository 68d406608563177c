"""
Evidence Integrity & Resilience

Version: 1.0.0

Integrity and failure isolation for digital evidence captures.

- Deterministic SHA-256 hashing of captured artifacts and metadata, and the
  combined hashes.json manifest
- Merkle trees with inclusion proofs for tamper evidence and selective
  disclosure
- Circuit breaker and retry with exponential backoff around calls to
  external trust services (timestamping authorities, blockchain anchors,
  upload endpoints)

Usage:
    from evidence_integrity import (
        HashGenerator,
        MerkleTree,
        CircuitBreakerRegistry,
        RetryHandler,
        protected_call,
    )

    # Hash a capture
    manifest = HashGenerator().process_evidence(
        {"screenshot.png": png_bytes, "page.html": html_bytes},
        {"url": "https://example.com", "capturedAt": "2025-01-10T12:00:00Z"},
    )

    # Tamper evidence over the file hashes
    tree = MerkleTree()
    tree.build(list(manifest.files.values()))
    proof = tree.get_proof(0)
    assert tree.verify_proof(proof)

    # Timestamp the combined hash through the TSA circuit breaker, with retry
    registry = CircuitBreakerRegistry()
    token = await protected_call(
        lambda: tsa_client.timestamp(manifest.combined_hash),
        "tsa-serpro",
        registry,
    )
"""

__version__ = "1.0.0"

# Errors
from .errors import (
    EvidenceIntegrityError,
    HashGenerationError,
    MerkleTreeError,
    ManifestError,
    CircuitOpenError,
    MaxRetriesExceededError,
)

# Canonicalization and hashing
from .canonicalization import normalize, canonicalize, canonicalize_str
from .hashing import sha256_hex, sha256_buffer, sha256_stream, is_sha256_hex

# Hash generator
from .hash_generator import (
    HashGenerator,
    FileHashResult,
    MetadataHashResult,
    CombinedHashResult,
    HashProgress,
)

# Manifest
from .manifest import HashesJson, manifest_components
from .verifier import ManifestVerification, verify_manifest
from .signing import (
    ManifestSigner,
    manifest_body_for_signing,
    verify_manifest_signature,
)

# Merkle
from .merkle import (
    MerkleTree,
    MerkleTreeResult,
    MerkleProof,
    MerkleSibling,
    NULL_LEAF_HASH,
    get_null_hash,
    create_merkle_tree,
    create_merkle_tree_from_data,
    verify_merkle_proof,
)

# Resilience
from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitBreakerConfig,
    CircuitBreakerStats,
    CircuitState,
)
from .retry import (
    RetryHandler,
    RetryConfig,
    RetryResult,
    AttemptInfo,
    default_is_retryable,
    with_retry,
)
from .resilience import protected_call, resilient


__all__ = [
    # Version
    "__version__",

    # Errors
    "EvidenceIntegrityError",
    "HashGenerationError",
    "MerkleTreeError",
    "ManifestError",
    "CircuitOpenError",
    "MaxRetriesExceededError",

    # Canonicalization
    "normalize",
    "canonicalize",
    "canonicalize_str",

    # Hashing
    "sha256_hex",
    "sha256_buffer",
    "sha256_stream",
    "is_sha256_hex",

    # Hash generator
    "HashGenerator",
    "FileHashResult",
    "MetadataHashResult",
    "CombinedHashResult",
    "HashProgress",

    # Manifest
    "HashesJson",
    "manifest_components",
    "ManifestVerification",
    "verify_manifest",
    "ManifestSigner",
    "manifest_body_for_signing",
    "verify_manifest_signature",

    # Merkle
    "MerkleTree",
    "MerkleTreeResult",
    "MerkleProof",
    "MerkleSibling",
    "NULL_LEAF_HASH",
    "get_null_hash",
    "create_merkle_tree",
    "create_merkle_tree_from_data",
    "verify_merkle_proof",

    # Circuit breaker
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitBreakerConfig",
    "CircuitBreakerStats",
    "CircuitState",

    # Retry
    "RetryHandler",
    "RetryConfig",
    "RetryResult",
    "AttemptInfo",
    "default_is_retryable",
    "with_retry",

    # Composition
    "protected_call",
    "resilient",
]
