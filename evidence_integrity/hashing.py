"""
Evidence Hashing Primitives

All hashes use SHA-256 with lowercase hexadecimal output and no prefix.
"""

import hashlib
import re
from typing import BinaryIO, Tuple, Union

HEX_SHA256_PATTERN = re.compile(r'[0-9a-fA-F]{64}')

DEFAULT_CHUNK_SIZE = 1024 * 1024


def sha256_hex(data: Union[bytes, bytearray, memoryview, str]) -> str:
    """Compute SHA-256 hash and return as lowercase hex string."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()


def sha256_buffer(data: Union[bytes, bytearray, memoryview], chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """
    Hash an in-memory buffer in chunks.

    Produces the same digest as hashing the buffer in one call.
    """
    digest = hashlib.sha256()
    view = memoryview(data).cast('B')
    for offset in range(0, len(view), chunk_size):
        digest.update(view[offset:offset + chunk_size])
    return digest.hexdigest()


def sha256_stream(stream: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Tuple[str, int]:
    """
    Hash a readable binary stream until EOF.

    Returns:
        Tuple of (hex digest, number of bytes read)
    """
    digest = hashlib.sha256()
    size = 0
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        if isinstance(chunk, str):
            raise TypeError("stream must be opened in binary mode")
        digest.update(chunk)
        size += len(chunk)
    return digest.hexdigest(), size


def is_sha256_hex(value: object) -> bool:
    """Check that a value is a 64-character hex string (any case)."""
    return isinstance(value, str) and HEX_SHA256_PATTERN.fullmatch(value) is not None
