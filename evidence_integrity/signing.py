"""
Manifest Signing

Ed25519 (RFC 8032) signatures over the canonical JSON of a hashes.json
manifest. The signed body is the manifest without its "signatures" field.
"""

import base64
from typing import Any, Dict, Mapping, Optional, Union

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .canonicalization import canonicalize
from .config import MANIFEST_KEY_ID
from .manifest import HashesJson

SIGNATURE_ALGORITHM = "ed25519"

ManifestLike = Union[HashesJson, Mapping[str, Any]]


def manifest_body_for_signing(manifest: ManifestLike) -> Dict[str, Any]:
    """
    Extract the manifest body for canonical signing.

    Removes the signatures field (if present).
    """
    if isinstance(manifest, HashesJson):
        body = manifest.to_dict()
    else:
        body = dict(manifest)
    body.pop("signatures", None)
    return body


class ManifestSigner:
    """
    Signs evidence manifests with an Ed25519 key.

    A fresh key is generated when none is supplied; persist
    `private_key_b64` to reuse it across processes.
    """

    def __init__(self, signing_key: Optional[bytes] = None, key_id: str = MANIFEST_KEY_ID):
        self._sk = SigningKey(signing_key) if signing_key is not None else SigningKey.generate()
        self.key_id = key_id

    @classmethod
    def from_private_key_b64(cls, private_key_b64: str, key_id: str = MANIFEST_KEY_ID) -> 'ManifestSigner':
        return cls(base64.b64decode(private_key_b64), key_id=key_id)

    @property
    def public_key_b64(self) -> str:
        return base64.b64encode(bytes(self._sk.verify_key)).decode('ascii')

    @property
    def private_key_b64(self) -> str:
        return base64.b64encode(bytes(self._sk)).decode('ascii')

    def sign(self, manifest: ManifestLike) -> Dict[str, str]:
        """
        Sign a manifest.

        Returns:
            Signature dict with kid, alg and base64 signature
        """
        payload = canonicalize(manifest_body_for_signing(manifest))
        signature = self._sk.sign(payload).signature
        return {
            "kid": self.key_id,
            "alg": SIGNATURE_ALGORITHM,
            "sig_b64": base64.b64encode(signature).decode('ascii'),
        }

    def signed_manifest(self, manifest: ManifestLike) -> Dict[str, Any]:
        """Return the manifest dict with a signatures list attached."""
        signed = manifest_body_for_signing(manifest)
        signed["signatures"] = [self.sign(manifest)]
        return signed


def verify_manifest_signature(signed_manifest: Mapping[str, Any], public_key_b64: str) -> bool:
    """
    Verify the first signature on a signed manifest.

    Returns:
        True if the signature is valid for the manifest body, False
        otherwise (never raises)
    """
    try:
        sigs = signed_manifest.get("signatures")
        if not isinstance(sigs, list) or not sigs:
            return False
        sig = sigs[0]
        if not isinstance(sig, Mapping):
            return False
        if sig.get("alg") != SIGNATURE_ALGORITHM:
            return False
        payload = canonicalize(manifest_body_for_signing(signed_manifest))
        verify_key = VerifyKey(base64.b64decode(public_key_b64))
        verify_key.verify(payload, base64.b64decode(sig.get("sig_b64", "")))
        return True
    except (BadSignatureError, ValueError, TypeError, AttributeError, KeyError, IndexError):
        return False
