"""
Hash generator for digital evidence.

Computes SHA-256 hashes of captured files and of capture metadata, and
combines them into the hashes.json integrity manifest. Identical bytes
always produce identical hashes, independent of file names, call order or
mapping insertion order.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .canonicalization import canonicalize_str
from .config import HASH_CHUNK_SIZE
from .errors import HashGenerationError
from .hashing import is_sha256_hex, sha256_buffer, sha256_hex, sha256_stream
from .logging_config import audit_log
from .manifest import HashesJson, manifest_components

logger = logging.getLogger(__name__)

FileData = Union[bytes, bytearray, memoryview, Any]

STAGE_FILES = "files"
STAGE_METADATA = "metadata"
STAGE_COMBINED = "combined"
STAGE_COMPLETE = "complete"


@dataclass
class FileHashResult:
    """Hash of a single captured file."""
    file_name: str
    hash: str
    size_bytes: int
    processing_time_ms: float


@dataclass
class MetadataHashResult:
    """Hash of the capture metadata and the canonical JSON it was computed over."""
    hash: str
    serialized_json: str
    processing_time_ms: float


@dataclass
class CombinedHashResult:
    """Combined hash over a set of component hashes."""
    combined_hash: str
    component_hashes: List[str]
    processing_time_ms: float


@dataclass
class HashProgress:
    """Progress report passed to the on_progress callback."""
    stage: str
    current: int
    total: int
    percent: int
    message: str
    current_file: Optional[str] = None


ProgressCallback = Callable[[HashProgress], None]


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


class HashGenerator:
    """
    Hash generator for evidence artifacts.

    Features:
    - Hash of individual files (screenshots, video, HTML)
    - Hash of metadata with recursively sorted keys
    - Combined hash of every component
    - Chunked digest of large buffers and binary streams
    - hashes.json manifest generation
    """

    def __init__(
        self,
        chunk_size: int = HASH_CHUNK_SIZE,
        on_progress: Optional[ProgressCallback] = None
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size
        self.on_progress = on_progress

    def hash_file(self, data: FileData, file_name: str) -> FileHashResult:
        """
        Compute the SHA-256 hash of a file.

        Args:
            data: bytes, bytearray, memoryview, or a readable binary stream
            file_name: Name used to identify the file; does not affect the hash

        Returns:
            FileHashResult with lowercase hex hash and size

        Raises:
            HashGenerationError: for None data, unsupported types or an
                empty file name
        """
        start = time.perf_counter()

        if data is None:
            raise HashGenerationError("File data must not be None")
        if not file_name or not isinstance(file_name, str):
            raise HashGenerationError("File name is required")

        try:
            if isinstance(data, (bytes, bytearray, memoryview)):
                size_bytes = memoryview(data).nbytes
                file_hash = sha256_buffer(data, self.chunk_size)
            elif hasattr(data, "read"):
                file_hash, size_bytes = sha256_stream(data, self.chunk_size)
            else:
                raise HashGenerationError(
                    f"Unsupported data type for {file_name}: {type(data).__name__}"
                )
        except HashGenerationError:
            raise
        except (TypeError, ValueError, OSError) as e:
            raise HashGenerationError(f"Failed to hash {file_name}: {e}", e) from e

        logger.debug("Hashed %s (%d bytes)", file_name, size_bytes)

        return FileHashResult(
            file_name=file_name,
            hash=file_hash,
            size_bytes=size_bytes,
            processing_time_ms=_elapsed_ms(start),
        )

    def hash_files(self, files: Mapping[str, FileData]) -> Dict[str, FileHashResult]:
        """
        Hash several files independently.

        Args:
            files: Mapping of file name to file data

        Returns:
            Mapping of file name to FileHashResult, in input order
        """
        if files is None or not isinstance(files, Mapping):
            raise HashGenerationError("Files must be a mapping of file name to data")

        results: Dict[str, FileHashResult] = {}
        total = len(files)

        for current, (file_name, data) in enumerate(files.items(), start=1):
            results[file_name] = self.hash_file(data, file_name)
            self._report(
                STAGE_FILES,
                current,
                total,
                f"Processed {current}/{total} files",
                current_file=file_name,
            )

        return results

    def hash_metadata(self, metadata: Mapping[str, Any]) -> MetadataHashResult:
        """
        Hash a metadata object over its canonical JSON.

        Keys are sorted recursively before serialization so that deep-equal
        objects hash identically whatever their key order.

        Raises:
            HashGenerationError: for None, arrays, non-objects or values
                JSON cannot represent
        """
        start = time.perf_counter()

        if metadata is None:
            raise HashGenerationError("Metadata must not be None")
        if not isinstance(metadata, Mapping):
            raise HashGenerationError("Metadata must be an object")

        self._report(STAGE_METADATA, 0, 1, "Hashing metadata...")

        try:
            serialized_json = canonicalize_str(metadata)
        except (TypeError, ValueError) as e:
            raise HashGenerationError(f"Failed to serialize metadata: {e}", e) from e

        metadata_hash = sha256_hex(serialized_json)

        self._report(STAGE_METADATA, 1, 1, "Metadata hash computed")

        return MetadataHashResult(
            hash=metadata_hash,
            serialized_json=serialized_json,
            processing_time_ms=_elapsed_ms(start),
        )

    def generate_combined_hash(self, hashes: Mapping[str, str]) -> CombinedHashResult:
        """
        Combine component hashes into one.

        Entries are sorted by key, their hash values concatenated in that
        order, and the concatenation hashed.

        Raises:
            HashGenerationError: for an empty mapping or an empty hash value
        """
        start = time.perf_counter()

        if not hashes:
            raise HashGenerationError("At least one hash is required to build a combined hash")

        self._report(STAGE_COMBINED, 0, 1, "Generating combined hash...")

        component_hashes: List[str] = []
        for key in sorted(hashes.keys()):
            value = hashes[key]
            if not value or not isinstance(value, str):
                raise HashGenerationError(f"Invalid hash for component: {key}")
            component_hashes.append(value)

        combined_hash = sha256_hex("".join(component_hashes))

        self._report(STAGE_COMBINED, 1, 1, "Combined hash generated")

        return CombinedHashResult(
            combined_hash=combined_hash,
            component_hashes=component_hashes,
            processing_time_ms=_elapsed_ms(start),
        )

    def generate_hashes_json(
        self,
        file_hashes: Mapping[str, str],
        metadata_hash: str,
        pisa_chain_hash: Optional[str] = None
    ) -> HashesJson:
        """
        Assemble the hashes.json manifest.

        Args:
            file_hashes: Mapping of file name to hash
            metadata_hash: Hash of the capture metadata
            pisa_chain_hash: Hash of the PISA processing chain (optional)

        Returns:
            HashesJson ready for serialization
        """
        if not file_hashes:
            raise HashGenerationError("At least one file hash is required")
        if not metadata_hash or not isinstance(metadata_hash, str):
            raise HashGenerationError("Metadata hash is required")
        if not is_sha256_hex(metadata_hash):
            raise HashGenerationError("Metadata hash must be a SHA-256 hex digest")
        for name, h in file_hashes.items():
            if not is_sha256_hex(h):
                raise HashGenerationError(f"Invalid hash for file: {name}")

        if pisa_chain_hash and not is_sha256_hex(pisa_chain_hash):
            raise HashGenerationError("PISA chain hash must be a SHA-256 hex digest")

        files = {name: h.lower() for name, h in file_hashes.items()}
        metadata_hash = metadata_hash.lower()
        pisa_chain_hash = pisa_chain_hash.lower() if pisa_chain_hash else None

        combined = self.generate_combined_hash(
            manifest_components(files, metadata_hash, pisa_chain_hash)
        )

        manifest = HashesJson(
            combined_hash=combined.combined_hash,
            files=files,
            metadata_hash=metadata_hash,
            pisa_chain_hash=pisa_chain_hash,
        )

        audit_log.manifest_generated(
            combined_hash=manifest.combined_hash,
            file_names=sorted(files),
            has_pisa_chain=manifest.pisa_chain_hash is not None,
        )
        self._report(STAGE_COMPLETE, 1, 1, "hashes.json generated")

        return manifest

    def process_evidence(
        self,
        files: Mapping[str, FileData],
        metadata: Mapping[str, Any],
        pisa_chain_hash: Optional[str] = None
    ) -> HashesJson:
        """
        Hash a complete evidence capture.

        Steps: hash files, hash metadata, combine, build the manifest.
        """
        file_results = self.hash_files(files)
        file_hashes = {name: result.hash for name, result in file_results.items()}

        metadata_result = self.hash_metadata(metadata)

        return self.generate_hashes_json(file_hashes, metadata_result.hash, pisa_chain_hash)

    def _report(
        self,
        stage: str,
        current: int,
        total: int,
        message: str,
        current_file: Optional[str] = None
    ) -> None:
        if self.on_progress is None:
            return
        percent = round(current / total * 100) if total else 100
        self.on_progress(HashProgress(
            stage=stage,
            current=current,
            total=total,
            percent=percent,
            message=message,
            current_file=current_file,
        ))
