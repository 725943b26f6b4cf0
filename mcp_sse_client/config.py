"""Client configuration - defaults, JSON config files and environment"""

import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://api.metaid.io/mcp-service"
DEFAULT_TIMEOUT = 30.0
DEFAULT_CLIENT_NAME = "mcp-sse-client"
DEFAULT_CLIENT_VERSION = "1.0.0"

URL_ENV = "MCP_SSE_URL"
TIMEOUT_ENV = "MCP_SSE_TIMEOUT"


def _expand_env_vars(value: str) -> str:
    """Expand environment variables in string (supports $VAR and ${VAR} syntax)"""
    if not isinstance(value, str):
        return value

    def replace_var(match):
        return os.environ.get(match.group(1), match.group(0))

    result = re.sub(r'\$\{([^}]+)\}', replace_var, value)
    # $VAR must be followed by a non-identifier character or the end
    result = re.sub(r'\$([A-Za-z_][A-Za-z0-9_]*)(?=[^A-Za-z0-9_]|$)', replace_var, result)
    return result


def _parse_timeout(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f"Invalid timeout: {value!r}")
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid timeout: {value!r}")
    if timeout <= 0:
        raise ValueError(f"Timeout must be positive: {value!r}")
    return timeout


@dataclass
class ClientConfig:
    """Settings for one MCPClient"""
    base_url: str = DEFAULT_URL
    timeout: float = DEFAULT_TIMEOUT  # seconds
    client_name: str = DEFAULT_CLIENT_NAME
    client_version: str = DEFAULT_CLIENT_VERSION

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "ClientConfig":
        """Create from the JSON config file format"""
        return cls(
            base_url=_expand_env_vars(config.get("base_url") or DEFAULT_URL),
            timeout=_parse_timeout(config.get("timeout", DEFAULT_TIMEOUT)),
            client_name=config.get("client_name", DEFAULT_CLIENT_NAME),
            client_version=config.get("client_version", DEFAULT_CLIENT_VERSION),
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        """Create from MCP_SSE_URL / MCP_SSE_TIMEOUT, falling back to defaults"""
        environ = os.environ if environ is None else environ
        config = {}
        if environ.get(URL_ENV):
            config["base_url"] = environ[URL_ENV]
        if environ.get(TIMEOUT_ENV):
            config["timeout"] = environ[TIMEOUT_ENV]
        return cls.from_dict(config)


def load_config(config_path: str) -> ClientConfig:
    """
    Load client configuration from a JSON file.

    Args:
        config_path: Path to the config file

    Returns:
        ClientConfig

    Raises:
        FileNotFoundError: If config file not found
        json.JSONDecodeError: If config is invalid JSON
        ValueError: If config format is invalid
    """
    file_path = Path(config_path).expanduser()

    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {file_path}")

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            config_data = json.load(f)
    except json.JSONDecodeError as e:
        raise json.JSONDecodeError(
            f"Invalid JSON in config file: {e.msg}",
            e.doc,
            e.pos
        )

    if not isinstance(config_data, dict):
        raise ValueError("Config must be a JSON object")

    unknown = set(config_data) - {"base_url", "timeout", "client_name", "client_version"}
    if unknown:
        logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")

    return ClientConfig.from_dict(config_data)
