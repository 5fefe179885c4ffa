"""Shared fixtures: a real Tink recipient keyset and decryption helpers."""

import base64
import json

import pytest
import tink
from tink import aead, hybrid, secret_key_access


@pytest.fixture(scope="session")
def recipient_private():
    """Recipient's private hybrid keyset handle."""
    hybrid.register()
    return tink.new_keyset_handle(
        hybrid.hybrid_key_templates.ECIES_P256_HKDF_HMAC_SHA256_AES128_GCM
    )


@pytest.fixture(scope="session")
def recipient_public(recipient_private):
    """Recipient's public keyset handle."""
    return recipient_private.public_keyset_handle()


@pytest.fixture(scope="session")
def recipient_public_json(recipient_public):
    """Recipient's public keyset as served over HTTP."""
    return tink.json_proto_keyset_format.serialize_without_secret(recipient_public)


@pytest.fixture(scope="session")
def unwrap(recipient_private):
    """Decrypt a base64 wrapped-key artifact into its JSON payload."""
    decrypter = recipient_private.primitive(hybrid.HybridDecrypt)

    def _unwrap(wrapped_key: str) -> dict:
        payload = decrypter.decrypt(base64.b64decode(wrapped_key), b"")
        return json.loads(payload)

    return _unwrap


@pytest.fixture(scope="session")
def keyset_aead():
    """Build a Tink AEAD from a base64 or raw serialized content keyset."""
    aead.register()

    def _keyset_aead(serialized: bytes | str):
        if isinstance(serialized, str):
            serialized = base64.b64decode(serialized)
        handle = tink.proto_keyset_format.parse(serialized, secret_key_access.TOKEN)
        return handle.primitive(aead.Aead)

    return _keyset_aead
