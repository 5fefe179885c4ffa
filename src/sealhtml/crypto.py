"""Core cryptographic functions for sealhtml.

Protected content is encrypted with a fresh AES-128-GCM key whose
ciphertexts follow Tink's wire convention, so the key can travel as a
serialized Tink keyset. That keyset is wrapped for the recipient with
Tink hybrid encryption.
"""

import base64
import json
import logging
import os
import struct
from dataclasses import dataclass, field

import tink
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from tink import hybrid
from tink.proto import aes_gcm_pb2, tink_pb2

logger = logging.getLogger(__name__)

# Keyset parameters (must match the reader's Tink configuration)
AES_GCM_KEY_URL = "type.googleapis.com/google.crypto.tink.AesGcmKey"
AES_GCM_KEY_VERSION = 0
KEY_LENGTH = 16  # 128 bits
IV_LENGTH = 12  # 96 bits (standard for GCM)
KEY_ID = 1  # one key per document, so the id never collides
TINK_START_BYTE = b"\x01"

hybrid.register()


class SealhtmlError(Exception):
    """Base exception for sealhtml errors."""

    pass


class ParseError(SealhtmlError):
    """The input document could not be parsed."""


class KeyGenerationError(SealhtmlError):
    """A content key could not be generated."""


class EncryptionError(SealhtmlError):
    """A protected section could not be encrypted."""


class FetchError(SealhtmlError):
    """The recipient's public keyset could not be retrieved."""


class WrapError(SealhtmlError):
    """The content key could not be wrapped for the recipient."""


class StructuralError(SealhtmlError):
    """The document lacks a region the output must be placed in."""


@dataclass(frozen=True)
class SymmetricKey:
    """A single AES-GCM content key and its keyset id."""

    key_value: bytes = field(repr=False)
    key_id: int = KEY_ID


def generate_key() -> SymmetricKey:
    """Generate a fresh random content key.

    Raises:
        KeyGenerationError: If the OS has no usable randomness source.
    """
    try:
        key_value = os.urandom(KEY_LENGTH)
    except (NotImplementedError, OSError) as e:
        raise KeyGenerationError(f"Cannot generate content key: {e}") from e
    return SymmetricKey(key_value=key_value)


def serialize_keyset(key: SymmetricKey) -> bytes:
    """Serialize a content key as a binary Tink keyset.

    The keyset holds exactly one enabled AES-GCM key, marked primary,
    using the TINK output prefix.
    """
    aes_gcm_key = aes_gcm_pb2.AesGcmKey(
        version=AES_GCM_KEY_VERSION,
        key_value=key.key_value,
    )
    key_data = tink_pb2.KeyData(
        type_url=AES_GCM_KEY_URL,
        value=aes_gcm_key.SerializeToString(),
        key_material_type=tink_pb2.KeyData.SYMMETRIC,
    )
    keyset = tink_pb2.Keyset(
        primary_key_id=key.key_id,
        key=[
            tink_pb2.Keyset.Key(
                key_data=key_data,
                status=tink_pb2.ENABLED,
                key_id=key.key_id,
                output_prefix_type=tink_pb2.TINK,
            )
        ],
    )
    return keyset.SerializeToString()


class ContentCipher:
    """AES-GCM encryption of section content under one content key.

    Output layout is ``0x01 || key_id || iv || ciphertext || tag``, the
    same bytes a Tink AEAD primitive built from ``serialize_keyset(key)``
    produces and accepts.
    """

    def __init__(self, key: SymmetricKey):
        self._aesgcm = AESGCM(key.key_value)
        self._prefix = TINK_START_BYTE + struct.pack(">I", key.key_id)

    def encrypt(self, plaintext: bytes) -> bytes:
        """Encrypt plaintext with a random IV and no associated data."""
        iv = os.urandom(IV_LENGTH)
        return self._prefix + iv + self._aesgcm.encrypt(iv, plaintext, None)


def build_key_payload(key: SymmetricKey, access_requirement: str) -> bytes:
    """Build the JSON payload that carries the content key to the recipient.

    Args:
        key: Content key used for the document's sections.
        access_requirement: Opaque entitlement identifier, stored verbatim.

    Returns:
        UTF-8 JSON: {"accessRequirements": [...], "key": <base64 keyset>}.
    """
    keyset_b64 = base64.b64encode(serialize_keyset(key)).decode("ascii")
    payload = {
        "accessRequirements": [access_requirement],
        "key": keyset_b64,
    }
    return json.dumps(payload).encode("utf-8")


def wrap_key(
    key: SymmetricKey,
    access_requirement: str,
    recipient: tink.KeysetHandle,
) -> str:
    """Wrap the content key for the recipient with hybrid encryption.

    Args:
        key: Content key to wrap.
        access_requirement: Opaque entitlement identifier.
        recipient: Public keyset handle of the recipient.

    Returns:
        Base64-encoded hybrid ciphertext of the key payload.

    Raises:
        WrapError: If the recipient keyset is not a hybrid encryption
            keyset or encryption fails.
    """
    payload = build_key_payload(key, access_requirement)

    try:
        encrypter = recipient.primitive(hybrid.HybridEncrypt)
        ciphertext = encrypter.encrypt(payload, b"")
    except tink.TinkError as e:
        raise WrapError(f"Cannot wrap content key for recipient: {e}") from e

    logger.debug("Wrapped content key (%d bytes of ciphertext)", len(ciphertext))
    return base64.b64encode(ciphertext).decode("ascii")
