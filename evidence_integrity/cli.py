#!/usr/bin/env python3
"""
Evidence Integrity Command Line Interface

Usage:
    evidence-integrity hash -f <file>...
    evidence-integrity manifest -f <file>... -m <metadata.json> [--pisa HASH] [--sign-key <key.json>]
    evidence-integrity merkle -l <hash>...
    evidence-integrity prove -l <hash>... -i <index>
    evidence-integrity verify-proof -p <proof.json>
    evidence-integrity verify-manifest -M <manifest.json> -f <file>... [-m <metadata.json>] [-k <key.json>]
    evidence-integrity keygen [-o <key.json>]
"""

import argparse
import json
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional

from .config import LOG_FILE, LOG_JSON, LOG_LEVEL, is_debug, is_production
from .errors import EvidenceIntegrityError


def load_json(path: str) -> dict:
    """Load JSON from file."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def save_json(data: dict, path: str):
    """Save JSON to file."""
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2)


def emit(data: dict, output: Optional[str] = None):
    """Print JSON, or save it when an output path is given."""
    if output:
        save_json(data, output)
        print(f"Saved to: {output}", file=sys.stderr)
    else:
        print(json.dumps(data, indent=2))


def evidence_names(paths: List[str]) -> Dict[str, str]:
    """
    Map each evidence file name to its path.

    Manifests key files by base name, so two paths sharing one are
    rejected rather than letting the second replace the first.
    """
    names: Dict[str, str] = {}
    for path in paths:
        name = Path(path).name
        if name in names:
            raise ValueError(f"Duplicate file name: {name} ({names[name]}, {path})")
        names[name] = path
    return names


def _open_evidence(stack: ExitStack, paths: List[str]) -> Dict[str, BinaryIO]:
    return {
        name: stack.enter_context(open(path, 'rb'))
        for name, path in evidence_names(paths).items()
    }


def _hash_paths(paths: List[str]) -> Dict[str, str]:
    from evidence_integrity import HashGenerator

    generator = HashGenerator()
    hashes: Dict[str, str] = {}
    for name, path in evidence_names(paths).items():
        with open(path, 'rb') as f:
            hashes[name] = generator.hash_file(f, name).hash
    return hashes


def cmd_hash(args):
    """Compute SHA-256 hashes of files."""
    emit(_hash_paths(args.file))
    return 0


def cmd_manifest(args):
    """Generate a hashes.json manifest for a capture."""
    from evidence_integrity import HashGenerator, ManifestSigner

    metadata = load_json(args.metadata)

    with ExitStack() as stack:
        files = _open_evidence(stack, args.file)
        manifest = HashGenerator().process_evidence(files, metadata, args.pisa)

    if args.sign_key:
        key = load_json(args.sign_key)
        signer = ManifestSigner.from_private_key_b64(key["private_key_b64"], key_id=key["kid"])
        emit(signer.signed_manifest(manifest), args.output)
    else:
        emit(manifest.to_dict(), args.output)
    return 0


def cmd_merkle(args):
    """Build a Merkle tree over leaf hashes."""
    from evidence_integrity import create_merkle_tree

    emit(create_merkle_tree(args.leaf).to_dict(), args.output)
    return 0


def cmd_prove(args):
    """Generate the inclusion proof of one leaf."""
    from evidence_integrity import MerkleTree

    tree = MerkleTree()
    tree.build(args.leaf)
    emit(tree.get_proof(args.index).to_dict(), args.output)
    return 0


def cmd_verify_proof(args):
    """Verify a Merkle inclusion proof."""
    from evidence_integrity import verify_merkle_proof

    if verify_merkle_proof(load_json(args.proof)):
        print("✓ VALID")
        return 0
    print("✗ INVALID")
    return 1


def cmd_verify_manifest(args):
    """Verify a manifest against the captured files and metadata."""
    from evidence_integrity import verify_manifest, verify_manifest_signature

    manifest = load_json(args.manifest)
    metadata = load_json(args.metadata) if args.metadata else None

    if args.public_key:
        key = load_json(args.public_key)
        if not verify_manifest_signature(manifest, key["public_key_b64"]):
            print("✗ INVALID: Signature verification failed")
            return 1

    with ExitStack() as stack:
        files = None
        if args.file:
            files = _open_evidence(stack, args.file)
        result = verify_manifest(manifest, files=files, metadata=metadata)

    if result.is_valid():
        print("✓ VALID")
        return 0
    print(f"✗ INVALID: {result.reason}")
    if result.details:
        print(json.dumps(result.details, indent=2))
    return 1


def cmd_keygen(args):
    """Generate an Ed25519 manifest signing key."""
    from evidence_integrity import ManifestSigner

    signer = ManifestSigner(key_id=args.key_id) if args.key_id else ManifestSigner()
    key = {
        "kid": signer.key_id,
        "alg": "ed25519",
        "public_key_b64": signer.public_key_b64,
        "private_key_b64": signer.private_key_b64,
    }
    emit(key, args.output)
    print(f"\nGenerated key: {signer.key_id}", file=sys.stderr)
    return 0


COMMANDS = {
    "hash": cmd_hash,
    "manifest": cmd_manifest,
    "merkle": cmd_merkle,
    "prove": cmd_prove,
    "verify-proof": cmd_verify_proof,
    "verify-manifest": cmd_verify_manifest,
    "keygen": cmd_keygen,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="evidence-integrity",
        description="Evidence integrity CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  evidence-integrity hash -f screenshot.png page.html
  evidence-integrity manifest -f screenshot.png page.html -m metadata.json -o hashes.json
  evidence-integrity prove -l <hash1> <hash2> <hash3> -i 1 -o proof.json
  evidence-integrity verify-proof -p proof.json
  evidence-integrity verify-manifest -M hashes.json -f screenshot.png page.html -m metadata.json
  evidence-integrity keygen -o signing_key.json
        """
    )
    parser.add_argument("--log-level", default=LOG_LEVEL, help="Log level")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # hash
    hash_parser = subparsers.add_parser("hash", help="Hash files")
    hash_parser.add_argument("-f", "--file", nargs="+", required=True, help="Files to hash")

    # manifest
    manifest_parser = subparsers.add_parser("manifest", help="Generate hashes.json manifest")
    manifest_parser.add_argument("-f", "--file", nargs="+", required=True, help="Captured files")
    manifest_parser.add_argument("-m", "--metadata", required=True, help="Metadata JSON file")
    manifest_parser.add_argument("--pisa", help="PISA chain hash")
    manifest_parser.add_argument("-s", "--sign-key", help="Signing key JSON file (from keygen)")
    manifest_parser.add_argument("-o", "--output", help="Output file for the manifest")

    # merkle
    merkle_parser = subparsers.add_parser("merkle", help="Build Merkle tree")
    merkle_parser.add_argument("-l", "--leaf", nargs="+", required=True, help="Leaf hashes")
    merkle_parser.add_argument("-o", "--output", help="Output file")

    # prove
    prove_parser = subparsers.add_parser("prove", help="Generate inclusion proof")
    prove_parser.add_argument("-l", "--leaf", nargs="+", required=True, help="Leaf hashes")
    prove_parser.add_argument("-i", "--index", type=int, required=True, help="Leaf index")
    prove_parser.add_argument("-o", "--output", help="Output file for the proof")

    # verify-proof
    verify_proof_parser = subparsers.add_parser("verify-proof", help="Verify inclusion proof")
    verify_proof_parser.add_argument("-p", "--proof", required=True, help="Proof JSON file")

    # verify-manifest
    verify_manifest_parser = subparsers.add_parser("verify-manifest", help="Verify hashes.json manifest")
    verify_manifest_parser.add_argument("-M", "--manifest", required=True, help="Manifest JSON file")
    verify_manifest_parser.add_argument("-f", "--file", nargs="+", help="Captured files")
    verify_manifest_parser.add_argument("-m", "--metadata", help="Metadata JSON file")
    verify_manifest_parser.add_argument("-k", "--public-key", help="Key JSON file to check the signature")

    # keygen
    keygen_parser = subparsers.add_parser("keygen", help="Generate signing key")
    keygen_parser.add_argument("-o", "--output", help="Output file for the key")
    keygen_parser.add_argument("-k", "--key-id", help="Key identifier")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    from evidence_integrity.logging_config import configure_logging

    parser = build_parser()
    args = parser.parse_args(argv)

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        return 1

    # EVIDENCE_DEBUG overrides --log-level; production always logs JSON
    level = "DEBUG" if is_debug() else args.log_level
    configure_logging(level, json_format=LOG_JSON or is_production(), log_file=LOG_FILE, stream=sys.stderr)

    try:
        return command(args)
    except (EvidenceIntegrityError, OSError, ValueError, KeyError) as e:
        print(f"✗ ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
