"""sealhtml - Encrypt marked sections of HTML for a public-key recipient."""

__version__ = "0.1.0"

from .config import SealhtmlConfig, load_config
from .crypto import (
    EncryptionError,
    FetchError,
    KeyGenerationError,
    ParseError,
    SealhtmlError,
    StructuralError,
    WrapError,
    generate_key,
    wrap_key,
)
from .fetcher import fetch_recipient_keyset
from .parser import find_protected_sections, seal_html

__all__ = [
    "seal_html",
    "find_protected_sections",
    "fetch_recipient_keyset",
    "generate_key",
    "wrap_key",
    "load_config",
    "SealhtmlConfig",
    "SealhtmlError",
    "ParseError",
    "KeyGenerationError",
    "EncryptionError",
    "FetchError",
    "WrapError",
    "StructuralError",
    "__version__",
]
