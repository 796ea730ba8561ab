"""marketdata CLI entry point.

JSON-only output, same envelopes as the MCP tools.
"""

import asyncio
from typing import Optional, Tuple

import click

from marketdata_mcp.config import ServerConfig
from marketdata_mcp.core.context import sync_request_context
from marketdata_mcp.core.governor.categories import PROFILES, get_profile
from marketdata_mcp.core.governor.engine import create_governor
from marketdata_mcp.core.providers import BrightDataFetcher
from marketdata_mcp.cli.output import emit, emit_error, emit_success
from marketdata_mcp.tools.market_data import perform_category_fetch, perform_multi_zone

_CATEGORY_CHOICES = sorted(name.replace("_", "-") for name in PROFILES)


@click.group()
@click.option(
    "--config-file",
    envvar="MARKETDATA_MCP_CONFIG_FILE",
    type=click.Path(exists=False),
    help="Path to a marketdata-mcp.toml file",
)
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[str]) -> None:
    """marketdata - budget-governed financial market content.

    All commands output JSON.
    """
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = ServerConfig.from_env(config_file)
    except ValueError as exc:
        emit_error(
            f"Invalid configuration: {exc}",
            "VALIDATION_ERROR",
            error_type="validation",
            remediation="Check the [governor] thresholds in your config file or environment.",
        )


@cli.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Run the MCP server over stdio."""
    from marketdata_mcp.server import create_server

    config: ServerConfig = ctx.obj["config"]
    create_server(config).run()


@cli.command()
@click.argument("category", type=click.Choice(_CATEGORY_CHOICES, case_sensitive=False))
@click.argument("query")
@click.option("--market", default="us", show_default=True, help="Region for source selection")
@click.option(
    "--zone",
    "zones",
    multiple=True,
    help="Govern the query once per zone (repeatable)",
)
@click.option(
    "--governor/--no-governor",
    "governor_enabled",
    default=None,
    help="Override the configured governor toggle",
)
@click.pass_context
def fetch(
    ctx: click.Context,
    category: str,
    query: str,
    market: str,
    zones: Tuple[str, ...],
    governor_enabled: Optional[bool],
) -> None:
    """Run one governed fetch and print the response envelope."""
    config: ServerConfig = ctx.obj["config"]
    config.setup_logging()
    if governor_enabled is not None:
        config.governor.enabled = governor_enabled

    governor = create_governor(config)
    fetcher = BrightDataFetcher(config.fetch)
    profile = get_profile(category)

    async def _run() -> dict:
        with sync_request_context(client_id="cli"):
            if zones:
                return await perform_multi_zone(
                    query=query,
                    zones=list(zones),
                    category=profile.name,
                    governor=governor,
                    fetch_fn=fetcher,
                )
            return await perform_category_fetch(
                profile.name,
                query=query,
                market=market,
                governor=governor,
                fetch_fn=fetcher,
            )

    response = asyncio.run(_run())
    emit(response)
    if not response.get("success"):
        ctx.exit(1)


@cli.command("config")
@click.option("--show-secrets", is_flag=True, help="Do not redact tokens and passwords")
@click.pass_context
def show_config(ctx: click.Context, show_secrets: bool) -> None:
    """Print the effective configuration."""
    config: ServerConfig = ctx.obj["config"]
    emit_success(config.to_dict(redact_secrets=not show_secrets))


if __name__ == "__main__":
    cli()
