"""nim-proxy - OpenAI-compatible chat-completions proxy for NVIDIA NIM.

Layers:
    gateway/    Proxy server, model catalog, payload transforms, NIM client
    cli         `nim-proxy` command

Quick Start:
    >>> from nim_proxy.gateway import NIMProxyServer, load_config
    >>> server = NIMProxyServer(config=load_config())
    >>> await server.serve()
"""

from nim_proxy.__version__ import __version__

__all__ = ["__version__"]
