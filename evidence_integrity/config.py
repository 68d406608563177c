"""
Configuration module for the evidence integrity subsystem.

Centralizes environment-driven settings and the per-service presets used by
the circuit breaker and the retry handler.
"""

import os
from typing import Any, Dict

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("EVIDENCE_ENV", "dev")  # dev|stage|prod

# Logging
LOG_LEVEL = os.getenv("EVIDENCE_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("EVIDENCE_LOG_JSON", "true").lower() in ("1", "true", "yes")
LOG_FILE = os.getenv("EVIDENCE_LOG_FILE") or None

# Hashing
HASH_CHUNK_SIZE = int(os.getenv("HASH_CHUNK_SIZE", str(1024 * 1024)))
MANIFEST_VERSION = "1.0.0"

# Signing
MANIFEST_KEY_ID = os.getenv("MANIFEST_KEY_ID", "kid:evidence-manifest-001")

# Circuit breaker
CIRCUIT_FAILURE_THRESHOLD = int(os.getenv("CIRCUIT_FAILURE_THRESHOLD", "5"))


# ============================================================
# Service Presets
# ============================================================

DEFAULT_SERVICE_TYPE = "default"
TIMESTAMPING_AUTHORITY = "timestamping-authority"
BLOCKCHAIN = "blockchain"
SECURE_CHANNEL = "secure-channel"
UPLOAD = "upload"
API = "api"

# Substrings checked against the lowercased service name, first match wins
SERVICE_NAME_PATTERNS = (
    (TIMESTAMPING_AUTHORITY, ("timestamp", "tsa", "icp")),
    (BLOCKCHAIN, ("blockchain", "polygon", "arbitrum")),
    (SECURE_CHANNEL, ("channel", "canal")),
)

CIRCUIT_PRESETS: Dict[str, Dict[str, int]] = {
    TIMESTAMPING_AUTHORITY: {
        "failure_threshold": 5,
        "reset_timeout_ms": 5 * 60 * 1000,
    },
    BLOCKCHAIN: {
        "failure_threshold": 5,
        "reset_timeout_ms": 60 * 1000,
    },
    SECURE_CHANNEL: {
        "failure_threshold": 3,
        "reset_timeout_ms": 30 * 1000,
    },
    DEFAULT_SERVICE_TYPE: {
        "failure_threshold": CIRCUIT_FAILURE_THRESHOLD,
        "reset_timeout_ms": 60 * 1000,
    },
}

RETRY_PRESETS: Dict[str, Dict[str, Any]] = {
    TIMESTAMPING_AUTHORITY: {
        "max_attempts": 3,
        "initial_delay_ms": 2000,
        "max_delay_ms": 30000,
        "backoff_factor": 2.0,
        "jitter_factor": 0.3,
    },
    BLOCKCHAIN: {
        "max_attempts": 5,
        "initial_delay_ms": 1000,
        "max_delay_ms": 15000,
        "backoff_factor": 2.0,
        "jitter_factor": 0.3,
    },
    SECURE_CHANNEL: {
        "max_attempts": 3,
        "initial_delay_ms": 1000,
        "max_delay_ms": 10000,
        "backoff_factor": 2.0,
        "jitter_factor": 0.2,
    },
    UPLOAD: {
        "max_attempts": 3,
        "initial_delay_ms": 1000,
        "max_delay_ms": 10000,
        "backoff_factor": 2.0,
        "jitter_factor": 0.3,
    },
    API: {
        "max_attempts": 3,
        "initial_delay_ms": 500,
        "max_delay_ms": 5000,
        "backoff_factor": 2.0,
        "jitter_factor": 0.3,
    },
    DEFAULT_SERVICE_TYPE: {
        "max_attempts": 3,
        "initial_delay_ms": 1000,
        "max_delay_ms": 10000,
        "backoff_factor": 2.0,
        "jitter_factor": 0.3,
    },
}


def detect_service_type(service_name: str) -> str:
    """
    Map a service name to its preset family.

    "tsa-serpro" and "icp-brasil-timestamp" map to the timestamping
    authority preset, "polygon-anchor" to blockchain. Names matching no
    pattern use the default preset.
    """
    lower_name = (service_name or "").lower()
    for service_type, patterns in SERVICE_NAME_PATTERNS:
        if any(p in lower_name for p in patterns):
            return service_type
    return DEFAULT_SERVICE_TYPE


def circuit_preset(service_name: str) -> Dict[str, int]:
    """Get the circuit breaker defaults for a service name."""
    return dict(CIRCUIT_PRESETS[detect_service_type(service_name)])


def retry_preset(service_type: str) -> Dict[str, Any]:
    """Get retry defaults by preset key, falling back to name detection."""
    if service_type in RETRY_PRESETS:
        return dict(RETRY_PRESETS[service_type])
    return dict(RETRY_PRESETS[detect_service_type(service_type)])


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("EVIDENCE_DEBUG", "").lower() in ("1", "true", "yes")
