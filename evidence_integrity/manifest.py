"""
hashes.json manifest model.

The manifest is persisted and uploaded next to the captured artifacts and
must be re-verifiable by third parties, so its JSON field names are fixed.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import MANIFEST_VERSION
from .errors import ManifestError
from .hashing import is_sha256_hex

FILE_COMPONENT_PREFIX = "file:"
METADATA_COMPONENT = "metadata"
PISA_COMPONENT = "pisa"


def utc_iso_now() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime('%Y-%m-%dT%H:%M:%S.') + f"{now.microsecond // 1000:03d}Z"


def manifest_components(
    files: Mapping[str, str],
    metadata_hash: str,
    pisa_chain_hash: Optional[str] = None
) -> Dict[str, str]:
    """
    Build the component map hashed into a manifest's combinedHash.

    Each file contributes "file:<name>", the metadata contributes
    "metadata" and a PISA chain hash, when present, contributes "pisa".
    """
    components = {f"{FILE_COMPONENT_PREFIX}{name}": h for name, h in files.items()}
    components[METADATA_COMPONENT] = metadata_hash
    if pisa_chain_hash:
        components[PISA_COMPONENT] = pisa_chain_hash
    return components


class HashesJson(BaseModel):
    """Integrity manifest of one evidence capture."""

    model_config = ConfigDict(populate_by_name=True)

    version: str = MANIFEST_VERSION
    generated_at: str = Field(default_factory=utc_iso_now, alias="generatedAt")
    combined_hash: str = Field(alias="combinedHash")
    files: Dict[str, str]
    metadata_hash: str = Field(alias="metadataHash")
    pisa_chain_hash: Optional[str] = Field(default=None, alias="pisaChainHash")

    @field_validator("combined_hash", "metadata_hash")
    @classmethod
    def _check_hash(cls, value: str) -> str:
        if not is_sha256_hex(value):
            raise ValueError("must be a SHA-256 hex digest")
        return value.lower()

    @field_validator("pisa_chain_hash")
    @classmethod
    def _check_pisa_chain_hash(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        if not is_sha256_hex(value):
            raise ValueError("must be a SHA-256 hex digest")
        return value.lower()

    @field_validator("files")
    @classmethod
    def _check_files(cls, value: Dict[str, str]) -> Dict[str, str]:
        if not value:
            raise ValueError("at least one file hash is required")
        for name, h in value.items():
            if not name:
                raise ValueError("file names must not be empty")
            if not is_sha256_hex(h):
                raise ValueError(f"hash for {name} must be a SHA-256 hex digest")
        return {name: h.lower() for name, h in value.items()}

    def components(self) -> Dict[str, str]:
        """Component map this manifest's combinedHash was computed over."""
        return manifest_components(self.files, self.metadata_hash, self.pisa_chain_hash)

    def to_dict(self) -> Dict[str, Any]:
        """JSON form, omitting pisaChainHash when absent."""
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'HashesJson':
        """
        Parse a manifest dict. Unknown keys such as "signatures" are ignored.

        Raises:
            ManifestError: if a required field is missing or malformed
        """
        if not isinstance(data, Mapping):
            raise ManifestError("Manifest must be a JSON object")
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            raise ManifestError(f"Malformed manifest: {e}") from e
