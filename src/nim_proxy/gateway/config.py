"""Process-wide configuration for the NIM proxy.

Configuration is resolved exactly once at startup and never reloaded.

Environment Variables:
    NIM_API_KEY: API key for the NIM backend (required)
    NIM_API_BASE: Backend base URL (default: https://integrate.api.nvidia.com/v1)
    PORT: Listen port (default: 3000)
    HOST: Listen address (default: 0.0.0.0)
    NIM_PROXY_DEBUG_DIR: Directory for per-request debug dumps (optional)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from nim_proxy.gateway.errors import ConfigError

DEFAULT_UPSTREAM_BASE_URL = "https://integrate.api.nvidia.com/v1"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000

SERVICE_NAME = "OpenAI to NVIDIA NIM Proxy"
OWNED_BY = "nvidia-nim-proxy"

# Client-facing model id -> NIM model id. Order is the /v1/models listing order.
DEFAULT_MODEL_MAPPING: Mapping[str, str] = MappingProxyType(
    {
        "deepseek-r1-0528": "deepseek-ai/deepseek-r1-0528",
        "deepseek-v3.1": "deepseek-ai/deepseek-v3.1",
        "deepseek-v3.1-terminus": "deepseek-ai/deepseek-v3.1-terminus",
        "deepseek-v3.2": "deepseek-ai/deepseek-v3.2",
        "GLM 4.7": "z-ai/glm4.7",
    }
)


@dataclass(frozen=True)
class NIMProxyConfig:
    """Configuration for the NIM proxy server."""

    upstream_api_key: str
    upstream_base_url: str = DEFAULT_UPSTREAM_BASE_URL

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    model_mapping: Mapping[str, str] = field(default_factory=lambda: DEFAULT_MODEL_MAPPING)

    # None disables the timeout; the backend may hold a request open indefinitely
    connect_timeout: float | None = None
    read_timeout: float | None = None

    # Request limits
    max_body_size: int = 100 * 1024 * 1024  # 100MB

    cors_allow_origin: str = "*"

    # Debug: save raw requests/responses to files
    debug_dir: str | None = None

    def __post_init__(self) -> None:
        if not self.upstream_api_key:
            raise ConfigError("upstream_api_key must not be empty")
        # Frozen dataclass: bypass __setattr__ to normalize fields
        object.__setattr__(self, "upstream_base_url", self.upstream_base_url.rstrip("/"))
        if not isinstance(self.model_mapping, MappingProxyType):
            object.__setattr__(self, "model_mapping", MappingProxyType(dict(self.model_mapping)))


def _parse_port(value: Any) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"Invalid port: {value!r}") from err
    if not 0 <= port <= 65535:
        raise ConfigError(f"Invalid port: {value!r}")
    return port


def load_config(environ: Mapping[str, str] | None = None, **overrides: Any) -> NIMProxyConfig:
    """Resolve the proxy configuration from the environment.

    Explicit keyword overrides win over environment values; overrides set to
    None are ignored so CLI options can be passed through unconditionally.

    Args:
        environ: Mapping to read variables from. Defaults to os.environ.
        **overrides: NIMProxyConfig field values.

    Returns:
        The resolved configuration.

    Raises:
        ConfigError: If the API key is missing or a value is invalid.
    """
    env = os.environ if environ is None else environ
    values = {key: value for key, value in overrides.items() if value is not None}

    api_key = values.pop("upstream_api_key", None) or env.get("NIM_API_KEY")
    if not api_key:
        raise ConfigError(
            "NIM_API_KEY environment variable is not set. "
            "Export your NVIDIA NIM API key before starting the proxy."
        )

    values.setdefault("upstream_base_url", env.get("NIM_API_BASE") or DEFAULT_UPSTREAM_BASE_URL)
    values.setdefault("host", env.get("HOST") or DEFAULT_HOST)
    values["port"] = _parse_port(values.get("port", env.get("PORT") or DEFAULT_PORT))
    if env.get("NIM_PROXY_DEBUG_DIR"):
        values.setdefault("debug_dir", env["NIM_PROXY_DEBUG_DIR"])

    return NIMProxyConfig(upstream_api_key=api_key, **values)
