"""NIM proxy gateway - OpenAI chat-completions front for NVIDIA NIM.

Components:
- Proxy server: routes, streaming passthrough, response reshaping
- Catalog: static client -> backend model mapping
- Transforms: request/response payload conversion
- Clients: aiohttp client for the NIM backend

Usage:
    from nim_proxy.gateway import NIMProxyServer, load_config
    import asyncio

    asyncio.run(NIMProxyServer(config=load_config()).serve())
"""

from nim_proxy.gateway.catalog import ModelCatalog
from nim_proxy.gateway.config import DEFAULT_MODEL_MAPPING, NIMProxyConfig, load_config
from nim_proxy.gateway.errors import ConfigError, UpstreamError, error_envelope
from nim_proxy.gateway.nim_proxy import NIMProxyServer
from nim_proxy.gateway.tracing import RequestTracer

__all__ = [
    "ConfigError",
    "DEFAULT_MODEL_MAPPING",
    "ModelCatalog",
    "NIMProxyConfig",
    "NIMProxyServer",
    "RequestTracer",
    "UpstreamError",
    "error_envelope",
    "load_config",
]
