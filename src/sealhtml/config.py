"""Configuration management for sealhtml.

Handles loading .sealhtml.yaml files with directory traversal,
environment variable overrides, and default values.
"""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from .crypto import SealhtmlError
from .fetcher import DEFAULT_PUBLIC_KEY_URL, DEFAULT_TIMEOUT

CONFIG_FILENAME = ".sealhtml.yaml"
ENV_PUBLIC_KEY_URL = "SEALHTML_PUBLIC_KEY_URL"
ENV_ACCESS_REQUIREMENT = "SEALHTML_ACCESS_REQUIREMENT"

DEFAULT_RECIPIENT_ID = "google.com"
DEFAULT_PARSER = "lxml"
VALID_PARSERS = ("lxml", "html.parser")


@dataclass
class SealhtmlConfig:
    """Complete sealhtml configuration."""

    public_key_url: str = DEFAULT_PUBLIC_KEY_URL
    access_requirement: str | None = None
    recipient_id: str = DEFAULT_RECIPIENT_ID  # key of the cryptokeys JSON object
    fetch_timeout: float = DEFAULT_TIMEOUT
    parser: str = DEFAULT_PARSER
    config_path: Path | None = None  # Path where config was loaded from

    def validate(self) -> None:
        """Validate configuration.

        Raises:
            SealhtmlError: If configuration is invalid.
        """
        if not self.public_key_url:
            raise SealhtmlError("public_key_url cannot be empty")

        if not self.recipient_id:
            raise SealhtmlError("recipient_id cannot be empty")

        if self.fetch_timeout <= 0:
            raise SealhtmlError("fetch_timeout must be positive")

        if self.parser not in VALID_PARSERS:
            raise SealhtmlError(
                f"Invalid parser: {self.parser}. "
                f"Must be one of: {', '.join(VALID_PARSERS)}"
            )


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find .sealhtml.yaml by traversing up from start_path.

    Args:
        start_path: Directory to start searching from. Defaults to cwd.

    Returns:
        Path to config file if found, None otherwise.
    """
    if start_path is None:
        start_path = Path.cwd()
    else:
        start_path = Path(start_path).resolve()

    if start_path.is_file():
        start_path = start_path.parent

    current = start_path
    while True:
        config_path = current / CONFIG_FILENAME
        if config_path.is_file():
            return config_path

        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(
    config_path: Path | None = None,
    start_path: Path | None = None,
    public_key_url: str | None = None,
    access_requirement: str | None = None,
) -> SealhtmlConfig:
    """Load configuration from file, environment, and overrides.

    Priority (highest to lowest):
    1. Function arguments
    2. Environment variables (SEALHTML_PUBLIC_KEY_URL,
       SEALHTML_ACCESS_REQUIREMENT)
    3. Config file (.sealhtml.yaml)
    4. Defaults

    Args:
        config_path: Explicit path to config file. If None, searches.
        start_path: Directory to start config file search from.
        public_key_url: Override for the recipient keyset URL.
        access_requirement: Override for the access requirement.

    Returns:
        Loaded and validated configuration.
    """
    config = SealhtmlConfig()

    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.is_file():
            raise SealhtmlError(f"Config file not found: {config_path}")
    else:
        config_path = find_config_file(start_path)

    if config_path is not None:
        config = _load_config_file(config_path)

    env_url = os.environ.get(ENV_PUBLIC_KEY_URL)
    if env_url:
        config.public_key_url = env_url

    env_requirement = os.environ.get(ENV_ACCESS_REQUIREMENT)
    if env_requirement:
        config.access_requirement = env_requirement

    if public_key_url is not None:
        config.public_key_url = public_key_url
    if access_requirement is not None:
        config.access_requirement = access_requirement

    config.validate()
    return config


def _load_config_file(config_path: Path) -> SealhtmlConfig:
    """Load configuration from a YAML file.

    Raises:
        SealhtmlError: If file cannot be read or parsed.
    """
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise SealhtmlError(f"Invalid YAML in {config_path}: {e}") from e
    except OSError as e:
        raise SealhtmlError(f"Cannot read config file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise SealhtmlError(f"Config file {config_path} must contain a mapping")

    config = SealhtmlConfig(config_path=config_path)

    if "public_key_url" in data:
        config.public_key_url = str(data["public_key_url"])

    if "access_requirement" in data:
        config.access_requirement = str(data["access_requirement"])

    if "recipient_id" in data:
        config.recipient_id = str(data["recipient_id"])

    if "fetch_timeout" in data:
        try:
            config.fetch_timeout = float(data["fetch_timeout"])
        except (TypeError, ValueError) as e:
            raise SealhtmlError(
                f"Invalid fetch_timeout in {config_path}: {data['fetch_timeout']!r}"
            ) from e

    if "parser" in data:
        config.parser = str(data["parser"])

    return config


def create_default_config(path: Path | None = None) -> Path:
    """Create a default .sealhtml.yaml config file.

    Args:
        path: Directory to create config in. Defaults to cwd.

    Returns:
        Path to created config file.

    Raises:
        SealhtmlError: If file already exists or cannot be written.
    """
    if path is None:
        path = Path.cwd()
    else:
        path = Path(path)

    config_path = path / CONFIG_FILENAME

    if config_path.exists():
        raise SealhtmlError(f"Config file already exists: {config_path}")

    config_content = f'''# sealhtml configuration

# Public Tink keyset of the party that will unwrap document keys
# (or use SEALHTML_PUBLIC_KEY_URL env var)
public_key_url: "{DEFAULT_PUBLIC_KEY_URL}"

# Entitlement required to read protected sections
# (or use SEALHTML_ACCESS_REQUIREMENT env var)
# access_requirement: "example.com:premium"

# Name under which the wrapped key is stored in <script cryptokeys>
recipient_id: "{DEFAULT_RECIPIENT_ID}"

# Seconds to wait for the keyset server
fetch_timeout: {DEFAULT_TIMEOUT}

# HTML tree builder: "lxml" or "html.parser"
parser: "{DEFAULT_PARSER}"
'''

    try:
        config_path.write_text(config_content)
    except OSError as e:
        raise SealhtmlError(f"Cannot write config file: {e}") from e

    return config_path
