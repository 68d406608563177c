#!/usr/bin/env python3
"""
Evidence Capture Example - Complete End-to-End Flow

Hashes a simulated web capture, signs the manifest, builds a Merkle tree
over the file hashes and timestamps the combined hash through a flaky
timestamping authority protected by a circuit breaker and retry.

Run with: python examples/capture_example.py
"""

import asyncio
import json
import random
from typing import Dict

from evidence_integrity import (
    CircuitBreakerRegistry,
    CircuitOpenError,
    HashGenerator,
    ManifestSigner,
    MaxRetriesExceededError,
    MerkleTree,
    protected_call,
    verify_manifest,
    verify_manifest_signature,
)
from evidence_integrity.logging_config import configure_logging, set_capture_id


class SimulatedTimestampingAuthority:
    """
    Simulate an RFC 3161 timestamping authority.

    In production, this would POST a TimeStampReq to the TSA endpoint.
    """

    def __init__(self, failure_rate: float, seed: int = 3):
        self.failure_rate = failure_rate
        self.rng = random.Random(seed)
        self.requests = 0

    async def timestamp(self, digest: str) -> Dict[str, str]:
        self.requests += 1
        await asyncio.sleep(0.01)
        if self.rng.random() < self.failure_rate:
            raise ConnectionError("TSA connection reset")
        return {"digest": digest, "token": f"tst-{self.requests:04d}"}


def print_step(title: str):
    print("\n" + "-" * 60)
    print(title)
    print("-" * 60)


async def main():
    configure_logging("WARNING", json_format=False)
    capture_id = set_capture_id()

    print("=" * 60)
    print(f"Evidence Capture {capture_id}")
    print("=" * 60)

    files = {
        "screenshot.png": b"\x89PNG\r\n\x1a\n" + bytes(range(256)) * 64,
        "page.html": "<html><body><h1>Publicação</h1></body></html>".encode("utf-8"),
    }
    metadata = {
        "url": "https://example.com/post/42",
        "capturedAt": "2025-01-10T12:00:00.000Z",
        "viewport": {"width": 1920, "height": 1080},
    }

    # Step 1: Hash the capture
    print_step("Step 1: Hash capture")
    generator = HashGenerator(on_progress=lambda p: print(f"  [{p.stage:>8}] {p.percent:3d}% {p.message}"))
    manifest = generator.process_evidence(files, metadata)
    print(json.dumps(manifest.to_dict(), indent=2))

    # Step 2: Sign the manifest
    print_step("Step 2: Sign manifest")
    signer = ManifestSigner()
    signed = signer.signed_manifest(manifest)
    print(f"  Signature valid: {verify_manifest_signature(signed, signer.public_key_b64)}")
    print(f"  Manifest valid:  {verify_manifest(signed, files=files, metadata=metadata).is_valid()}")

    # Step 3: Merkle tree over file hashes
    print_step("Step 3: Merkle tree")
    tree = MerkleTree()
    result = tree.build(list(manifest.files.values()))
    proof = tree.get_proof(0)
    print(f"  Root:   {result.root_hash}")
    print(f"  Leaves: {result.leaf_count} ({result.total_leaves} padded)")
    print(f"  Proof for leaf 0 verifies: {tree.verify_proof(proof)}")

    # Step 4: Timestamp through the circuit breaker
    print_step("Step 4: Timestamp combined hash")
    registry = CircuitBreakerRegistry()
    tsa = SimulatedTimestampingAuthority(failure_rate=0.5)

    try:
        token = await protected_call(
            lambda: tsa.timestamp(manifest.combined_hash),
            "tsa-serpro",
            registry,
            on_retry=lambda info: print(f"  Attempt {info.attempt} failed, retrying in {info.delay_ms}ms"),
        )
        print(f"  Token: {token['token']} after {tsa.requests} requests")
    except (CircuitOpenError, MaxRetriesExceededError) as e:
        print(f"  Timestamp unavailable: {e}")

    for stats in registry.get_all_stats():
        print(f"  Circuit {stats.service_name}: {stats.state.value} ({stats.failure_count} failures)")

    print("\n" + "=" * 60)
    print("Capture complete.")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
