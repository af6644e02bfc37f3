"""HTTP clients for upstream APIs."""

from .nim_client import NIMClient, NIMClientConfig

__all__ = ["NIMClient", "NIMClientConfig"]
