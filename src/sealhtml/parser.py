"""HTML parsing and transformation for sealhtml.

Handles finding protected <section> elements, replacing their content
with ciphertext, and embedding the wrapped content key in <head>.
"""

import base64
import json
import logging
from typing import Protocol

import tink
from bs4 import BeautifulSoup, FeatureNotFound, Tag
from bs4.builder import ParserRejectedMarkup
from bs4.dammit import EntitySubstitution
from bs4.formatter import HTMLFormatter

from .config import DEFAULT_PARSER, DEFAULT_RECIPIENT_ID, SealhtmlConfig
from .crypto import (
    ContentCipher,
    EncryptionError,
    ParseError,
    SealhtmlError,
    StructuralError,
    generate_key,
    wrap_key,
)
from .fetcher import fetch_recipient_keyset

logger = logging.getLogger(__name__)

SECTION_TAG = "section"
CONTENT_ATTR = "subscriptions-section"
CONTENT_VALUE = "content"
ENCRYPTED_ATTR = "encrypted"

CIPHERTEXT_ATTR = "ciphertext"
CIPHERTEXT_TYPE = "application/octet-stream"
CRYPTOKEYS_ATTR = "cryptokeys"
CRYPTOKEYS_TYPE = "application/json"


class SourceOrderFormatter(HTMLFormatter):
    """Minimal HTML formatter that keeps attributes in source order."""

    def attributes(self, tag):
        if tag.attrs is None:
            return []
        return list(tag.attrs.items())


SOURCE_ORDER_FORMATTER = SourceOrderFormatter(
    entity_substitution=EntitySubstitution.substitute_xml
)


class Cipher(Protocol):
    """Anything that can encrypt section bytes."""

    def encrypt(self, plaintext: bytes) -> bytes: ...


def parse_document(html: str, features: str = DEFAULT_PARSER) -> BeautifulSoup:
    """Parse an HTML document.

    Uses the requested tree builder, falling back to html.parser if it
    is not installed.

    Raises:
        ParseError: If the input is not text or the parser rejects it.
    """
    if not isinstance(html, str):
        raise ParseError(f"Expected HTML text, got {type(html).__name__}")

    try:
        try:
            return BeautifulSoup(html, features)
        except FeatureNotFound:
            logger.debug("Parser %r not available, using html.parser", features)
            return BeautifulSoup(html, "html.parser")
    except (ParserRejectedMarkup, ValueError) as e:
        raise ParseError(f"Cannot parse HTML: {e}") from e


def render_node(node: Tag, fragment: bool = False) -> str:
    """Serialize a node to HTML.

    Args:
        node: Tag or whole document to serialize.
        fragment: If True, serialize only the node's children, without
            the node's own start and end tags.

    Returns:
        HTML string.
    """
    if fragment:
        return node.decode_contents(formatter=SOURCE_ORDER_FORMATTER)
    return node.decode(formatter=SOURCE_ORDER_FORMATTER)


def _find_region(soup: BeautifulSoup, name: str) -> Tag | None:
    """Find a direct child of the top-level <html> element."""
    root = soup.find("html", recursive=False)
    if root is None:
        return None
    return root.find(name, recursive=False)


def is_protected_section(tag: Tag) -> bool:
    """Check if an element is a section marked for encryption.

    Requires <section subscriptions-section="content" encrypted>; the
    value of the encrypted attribute is not inspected.
    """
    return (
        isinstance(tag, Tag)
        and tag.name == SECTION_TAG
        and tag.get(CONTENT_ATTR) == CONTENT_VALUE
        and tag.has_attr(ENCRYPTED_ATTR)
    )


def find_protected_sections(soup: BeautifulSoup) -> list[Tag]:
    """Find all protected sections inside <body>, in document order.

    Returns an empty list if the document has no <html> or <body>.
    """
    body = _find_region(soup, "body")
    if body is None:
        logger.debug("No <body> under <html>, nothing to encrypt")
        return []
    return body.find_all(is_protected_section)


def encrypt_sections(
    soup: BeautifulSoup,
    sections: list[Tag],
    cipher: Cipher,
) -> int:
    """Replace the content of each section with its ciphertext.

    The serialized children of every section are encrypted with the same
    cipher and replaced by a single
    <script type="application/octet-stream" ciphertext> holding the
    base64 ciphertext. A section nested in one sealed earlier is already
    covered by that ciphertext and is skipped.

    Returns:
        Number of sections sealed.

    Raises:
        EncryptionError: If any section fails to encrypt. Sections already
            rewritten are not restored.
    """
    sealed = 0
    for index, section in enumerate(sections):
        if not any(parent is soup for parent in section.parents):
            logger.debug("Section %d is inside a sealed section, skipping", index)
            continue

        content = render_node(section, fragment=True)

        try:
            ciphertext = cipher.encrypt(content.encode("utf-8"))
        except Exception as e:
            raise EncryptionError(
                f"Cannot encrypt protected section {index}: {e}"
            ) from e

        section.clear()
        carrier = soup.new_tag(
            "script",
            attrs={"type": CIPHERTEXT_TYPE, CIPHERTEXT_ATTR: ""},
        )
        carrier.string = base64.b64encode(ciphertext).decode("ascii")
        section.append(carrier)

        logger.debug(
            "Encrypted section %d (%d bytes of markup)", index, len(content)
        )
        sealed += 1

    return sealed


def embed_key_artifact(
    soup: BeautifulSoup,
    wrapped_key: str,
    recipient_id: str = DEFAULT_RECIPIENT_ID,
) -> None:
    """Append the wrapped content key to the document's <head>.

    Adds <script type="application/json" cryptokeys> containing
    {"<recipient_id>": "<wrapped_key>"}.

    Raises:
        StructuralError: If there is no <head> directly under <html>.
    """
    head = _find_region(soup, "head")
    if head is None:
        raise StructuralError("Cannot place key artifact: document has no <head>")

    carrier = soup.new_tag(
        "script",
        attrs={"type": CRYPTOKEYS_TYPE, CRYPTOKEYS_ATTR: ""},
    )
    carrier.string = json.dumps({recipient_id: wrapped_key}, separators=(",", ":"))
    head.append(carrier)


def seal_html(
    html: str,
    public_key_url: str | None = None,
    access_requirement: str | None = None,
    recipient: tink.KeysetHandle | None = None,
    config: SealhtmlConfig | None = None,
) -> str:
    """Seal (encrypt) all protected sections in an HTML document.

    A fresh content key encrypts every protected section. The key is then
    wrapped for the recipient and stored in <head>. Either the complete
    document is returned or an exception is raised; no partial output
    escapes.

    Args:
        html: The HTML document as a string.
        public_key_url: URL of the recipient's public keyset. Defaults to
            config.public_key_url. Ignored if recipient is given.
        access_requirement: Entitlement stored with the wrapped key.
            Defaults to config.access_requirement.
        recipient: Already fetched public keyset handle.
        config: Optional configuration for defaults.

    Returns:
        The document with protected sections encrypted and the wrapped
        key embedded.

    Raises:
        SealhtmlError: Subclass naming the stage that failed.
    """
    if config is None:
        config = SealhtmlConfig()

    if access_requirement is None:
        access_requirement = config.access_requirement
    if access_requirement is None:
        raise SealhtmlError("No access requirement given")

    soup = parse_document(html, config.parser)
    sections = find_protected_sections(soup)

    key = generate_key()
    sealed = encrypt_sections(soup, sections, ContentCipher(key))

    if recipient is None:
        recipient = fetch_recipient_keyset(
            public_key_url or config.public_key_url,
            timeout=config.fetch_timeout,
        )

    wrapped_key = wrap_key(key, access_requirement, recipient)
    embed_key_artifact(soup, wrapped_key, config.recipient_id)

    logger.info(
        "Sealed %d protected section(s) for %s",
        sealed,
        config.recipient_id,
    )
    return render_node(soup)
