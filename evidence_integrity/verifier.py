"""
Manifest Verification

Lets a third party confirm after the fact that a hashes.json manifest is
internally consistent and matches the artifacts and metadata it describes,
without access to the original capture.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from .errors import HashGenerationError, ManifestError
from .hash_generator import FileData, HashGenerator
from .manifest import HashesJson


@dataclass
class ManifestVerification:
    """Result of verifying a manifest."""
    valid: bool
    reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def is_valid(self) -> bool:
        return self.valid

    @classmethod
    def ok(cls) -> 'ManifestVerification':
        return cls(valid=True)

    @classmethod
    def invalid(cls, reason: str, details: Dict[str, Any] = None) -> 'ManifestVerification':
        return cls(valid=False, reason=reason, details=details)


def verify_manifest(
    manifest: Union[HashesJson, Mapping[str, Any]],
    files: Optional[Mapping[str, FileData]] = None,
    metadata: Optional[Mapping[str, Any]] = None,
    generator: Optional[HashGenerator] = None
) -> ManifestVerification:
    """
    Verify a manifest.

    Steps:
    1. Parse the manifest
    2. Recompute combinedHash from its own entries
    3. Re-hash the supplied files and compare (if given)
    4. Re-hash the supplied metadata and compare (if given)

    Never raises on malformed or tampered manifests.
    """
    generator = generator or HashGenerator()

    # Step 1: Parse
    if not isinstance(manifest, HashesJson):
        try:
            manifest = HashesJson.from_dict(manifest)
        except ManifestError as e:
            return ManifestVerification.invalid("Malformed manifest", {"error": str(e)})

    # Step 2: Combined hash
    computed = generator.generate_combined_hash(manifest.components()).combined_hash
    if computed != manifest.combined_hash:
        return ManifestVerification.invalid(
            "Combined hash mismatch",
            {"computed": computed, "declared": manifest.combined_hash}
        )

    # Step 3: Files
    if files is not None:
        if set(files) != set(manifest.files):
            return ManifestVerification.invalid(
                "File set mismatch",
                {
                    "missing": sorted(set(manifest.files) - set(files)),
                    "unexpected": sorted(set(files) - set(manifest.files)),
                }
            )
        for name in sorted(files):
            try:
                file_hash = generator.hash_file(files[name], name).hash
            except HashGenerationError as e:
                return ManifestVerification.invalid("File could not be hashed", {"file": name, "error": str(e)})
            if file_hash != manifest.files[name]:
                return ManifestVerification.invalid(
                    "File hash mismatch",
                    {"file": name, "computed": file_hash, "declared": manifest.files[name]}
                )

    # Step 4: Metadata
    if metadata is not None:
        try:
            metadata_hash = generator.hash_metadata(metadata).hash
        except HashGenerationError as e:
            return ManifestVerification.invalid("Metadata could not be hashed", {"error": str(e)})
        if metadata_hash != manifest.metadata_hash:
            return ManifestVerification.invalid(
                "Metadata hash mismatch",
                {"computed": metadata_hash, "declared": manifest.metadata_hash}
            )

    return ManifestVerification.ok()
