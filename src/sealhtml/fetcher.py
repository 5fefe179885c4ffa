"""Retrieval of the recipient's public Tink keyset."""

import logging

import requests
import tink
from google.protobuf import json_format

from .crypto import FetchError

logger = logging.getLogger(__name__)

DEFAULT_PUBLIC_KEY_URL = (
    "https://news.google.com/swg/encryption/keys/prod/tink/public_key"
)
DEFAULT_TIMEOUT = 10.0  # seconds


def parse_recipient_keyset(keyset_json: str) -> tink.KeysetHandle:
    """Parse a JSON Tink keyset that must contain public keys only.

    Raises:
        FetchError: If the JSON is not a keyset or carries secret key
            material.
    """
    try:
        return tink.json_proto_keyset_format.parse_without_secret(keyset_json)
    except (tink.TinkError, json_format.ParseError) as e:
        raise FetchError(f"Invalid public keyset: {e}") from e


def fetch_recipient_keyset(
    url: str,
    timeout: float = DEFAULT_TIMEOUT,
) -> tink.KeysetHandle:
    """Fetch and parse the recipient's public keyset.

    Args:
        url: Location of the JSON-encoded public keyset.
        timeout: Seconds to wait for the server before giving up.

    Returns:
        Keyset handle holding public key material only.

    Raises:
        FetchError: On transport failure, timeout, a non-200 response
            or a malformed keyset.
    """
    logger.debug("Fetching recipient keyset from %s", url)

    try:
        response = requests.get(url, timeout=timeout)
    except requests.exceptions.Timeout as e:
        raise FetchError(
            f"Timed out after {timeout}s fetching public keyset from {url}"
        ) from e
    except requests.exceptions.RequestException as e:
        raise FetchError(f"Cannot fetch public keyset from {url}: {e}") from e

    if response.status_code != 200:
        raise FetchError(
            f"Failed to fetch public keyset from {url}: "
            f"HTTP {response.status_code}"
        )

    return parse_recipient_keyset(response.text)
