"""CLI entry point: ``nim-proxy``."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import NoReturn

import rich_click as click

from nim_proxy.__version__ import __version__
from nim_proxy.gateway.config import NIMProxyConfig, load_config
from nim_proxy.gateway.errors import ConfigError
from nim_proxy.gateway.nim_proxy import NIMProxyServer
from nim_proxy.logging_config import configure_logging

logger = logging.getLogger(__name__)

click.rich_click.USE_MARKDOWN = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = "Try running '--help' for more information."
click.rich_click.MAX_WIDTH = 100


def error_exit(message: str, code: int = 1) -> NoReturn:
    """Print error message and exit with code."""
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


async def _serve(config: NIMProxyConfig) -> None:
    server = NIMProxyServer(config=config)
    loop = asyncio.get_running_loop()

    def handle_signal(name: str) -> None:
        logger.info("Received %s, shutting down...", name)
        server.shutdown()

    loop.add_signal_handler(signal.SIGTERM, lambda: handle_signal("SIGTERM"))
    loop.add_signal_handler(signal.SIGINT, lambda: handle_signal("SIGINT"))
    try:
        await server.serve()
    finally:
        loop.remove_signal_handler(signal.SIGTERM)
        loop.remove_signal_handler(signal.SIGINT)
        await server.stop()


@click.command()
@click.version_option(version=__version__, prog_name="nim-proxy")
@click.option("--host", default=None, help="Address to bind (default: $HOST or 0.0.0.0)")
@click.option("--port", "-p", type=int, default=None, help="Port to listen on (default: $PORT or 3000)")
@click.option(
    "--upstream-url",
    default=None,
    help="NIM base URL (default: $NIM_API_BASE or https://integrate.api.nvidia.com/v1)",
)
@click.option("--api-key", default=None, help="NIM API key (default: $NIM_API_KEY)")
@click.option(
    "--debug-dir",
    default=None,
    help="Save each request/response as JSON under this directory (default: $NIM_PROXY_DEBUG_DIR)",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Log level (default: $NIM_PROXY_LOG_LEVEL or INFO)",
)
@click.option(
    "--log-format",
    type=click.Choice(["text", "json"]),
    default=None,
    help="Log output format (default: $NIM_PROXY_LOG_FORMAT or text)",
)
def cli(
    host: str | None,
    port: int | None,
    upstream_url: str | None,
    api_key: str | None,
    debug_dir: str | None,
    log_level: str | None,
    log_format: str | None,
) -> None:
    """OpenAI to NVIDIA NIM Proxy.

    Serves the OpenAI chat-completions API and forwards requests to
    NVIDIA NIM, mapping model names on the way.

    **Endpoints:**

        GET  /health

        GET  /v1/models

        POST /v1/chat/completions

    **Examples:**

        NIM_API_KEY=nvapi-... nim-proxy

        nim-proxy --port 8080 --log-level debug
    """
    configure_logging(level=log_level, format=log_format)  # type: ignore[arg-type]

    try:
        config = load_config(
            host=host,
            port=port,
            upstream_base_url=upstream_url,
            upstream_api_key=api_key,
            debug_dir=debug_dir,
        )
    except ConfigError as e:
        error_exit(str(e))

    asyncio.run(_serve(config))


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
