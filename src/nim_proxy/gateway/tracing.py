"""Request tracing for the proxy.

Provides short human-readable trace IDs for log correlation and, when a
debug directory is configured, JSON dumps of each request/response pair.
"""

from __future__ import annotations

import itertools
import json
import logging
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class RequestTracer:
    """Generates trace IDs and saves debug data.

    Debug files are saved to: {debug_dir}/logs/{session_id}/{trace_id}/

    Example:
        tracer = RequestTracer(debug_dir="/tmp/nim-proxy-debug")
        trace_id = tracer.generate_trace_id(body)
        tracer.save_debug(trace_id, "1_request.json", body)
    """

    def __init__(self, debug_dir: str | Path | None = None):
        # itertools.count is safe to advance from concurrent handlers on one loop
        self._counter = itertools.count(1)
        self._session_id: str | None = None
        self._debug_dir_config = debug_dir

    @property
    def debug_dir(self) -> Path | None:
        """Get the debug directory path, creating session folder name on first access."""
        if not self._debug_dir_config:
            return None

        if self._session_id is None:
            self._session_id = time.strftime("%Y-%m-%d_%H-%M-%S")

        return Path(self._debug_dir_config) / "logs" / self._session_id

    def generate_trace_id(self, body: Any) -> str:
        """Generate a trace ID with sequence number and requested model.

        Format: {counter}_{hhmmss}_{model}
        Example: 00001_031333_deepseekv3.1
        """
        sequence = next(self._counter)
        timestamp = time.strftime("%H%M%S")

        model = body.get("model") if isinstance(body, dict) else None
        context = str(model) if model else "request"
        # Clean context for filesystem
        context = "".join(c for c in context if c.isalnum() or c in "._-")[:32] or "request"

        return f"{sequence:05d}_{timestamp}_{context}"

    def save_debug(self, trace_id: str, filename: str, data: Any) -> None:
        """Save debug data to JSON file if debug_dir is configured."""
        if not self.debug_dir:
            return

        try:
            trace_path = self.debug_dir / trace_id
            trace_path.mkdir(parents=True, exist_ok=True)

            filepath = trace_path / filename
            with open(filepath, "w") as f:
                json.dump(data, f, indent=2, default=str)
            logger.debug("[%s] Saved debug file: %s", trace_id, filepath)
        except OSError as e:
            logger.warning("[%s] Failed to save debug file %s: %s", trace_id, filename, e)
