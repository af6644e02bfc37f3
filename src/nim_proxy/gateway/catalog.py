"""Model catalog backed by the static model mapping table."""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from nim_proxy.gateway.config import DEFAULT_MODEL_MAPPING, OWNED_BY


@dataclass(frozen=True)
class ModelCatalog:
    """Read-only view over the client -> backend model mapping.

    Safe to share between concurrent requests: nothing here mutates.
    """

    mapping: Mapping[str, str] = field(default_factory=lambda: DEFAULT_MODEL_MAPPING)
    owned_by: str = OWNED_BY

    def resolve(self, model: Any) -> str | None:
        """Return the backend model id for a client model id, or None."""
        if not isinstance(model, str):
            return None
        return self.mapping.get(model)

    def list_models(self) -> list[dict[str, Any]]:
        """Describe every client-facing model.

        ``created`` is stamped on each call, so repeated listings may differ.
        """
        created = int(time.time())
        return [
            {"id": model_id, "object": "model", "created": created, "owned_by": self.owned_by}
            for model_id in self.mapping
        ]

    def to_list_response(self) -> dict[str, Any]:
        """Build the ``GET /v1/models`` response body."""
        return {"object": "list", "data": self.list_models()}
