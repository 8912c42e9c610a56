"""
Quota Webhook CLI
=================
Run the admission webhook and inspect quota group usage.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
import uvicorn
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from quota_webhook.aggregator import UsageAggregator
from quota_webhook.config import Settings, get_settings
from quota_webhook.errors import AdmissionError
from quota_webhook.kubernetes import ConfigMapQuotaSource, kubernetes_client
from quota_webhook.logging_config import setup_logging
from quota_webhook.models import GroupUsage, QuotaConfiguration
from quota_webhook.quantity import Quantity
from quota_webhook.server import create_app

app = typer.Typer(
    name="quota-webhook",
    help="Group resource quota admission webhook",
    no_args_is_help=True,
)
console = Console()


def _settings_with(**overrides: object) -> Settings:
    """Current settings with the given non-None overrides, validated."""
    updates = {k: v for k, v in overrides.items() if v is not None}
    try:
        return Settings.model_validate({**get_settings().model_dump(), **updates})
    except ValidationError as e:
        for err in e.errors():
            field = ".".join(str(part) for part in err["loc"])
            console.print(f"[red]Invalid {field}:[/red] {escape(err['msg'])}")
        raise typer.Exit(1)


# ============================================
# CLI Commands
# ============================================


@app.command()
def serve(
    host: Annotated[Optional[str], typer.Option("--host", help="Listen address")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Listen port")] = None,
    tls_cert: Annotated[
        Optional[Path],
        typer.Option("--tls-cert", help="TLS certificate file"),
    ] = None,
    tls_key: Annotated[
        Optional[Path],
        typer.Option("--tls-key", help="TLS private key file"),
    ] = None,
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    ] = None,
) -> None:
    """Serve the webhook over TLS."""
    settings = _settings_with(
        host=host,
        port=port,
        tls_cert_file=tls_cert,
        tls_key_file=tls_key,
        log_level=log_level.upper() if log_level else None,
    )
    setup_logging(settings.log_level, log_file=settings.log_file, json_logs=settings.json_logs)

    missing = [str(p) for p in (settings.tls_cert_file, settings.tls_key_file) if not p.is_file()]
    if missing:
        console.print(f"[red]TLS files not found:[/red] {', '.join(missing)}")
        raise typer.Exit(1)

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        ssl_certfile=str(settings.tls_cert_file),
        ssl_keyfile=str(settings.tls_key_file),
        log_level=settings.log_level.lower(),
    )


@app.command()
def usage(
    namespace: Annotated[str, typer.Argument(help="Namespace of the quota group")],
    group: Annotated[str, typer.Argument(help="Value of the grouping label")],
) -> None:
    """Show a group's current usage against the configured ceilings."""
    settings = get_settings()
    try:
        quota, current = asyncio.run(_load_usage(settings, namespace, group))
    except AdmissionError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)
    _print_usage(current, quota)


async def _load_usage(settings: Settings, namespace: str, group: str) -> tuple[QuotaConfiguration, GroupUsage]:
    async with kubernetes_client(settings) as k8s:
        quota = await ConfigMapQuotaSource(k8s, settings).load()
        current = await UsageAggregator(k8s).aggregate(namespace, settings.group_label_key, group)
    return quota, current


def _percent(used: Quantity, ceiling: Quantity) -> str:
    if ceiling.amount <= 0:
        return "-"
    return f"{float(used.amount / ceiling.amount) * 100:.1f}%"


def _print_usage(current: GroupUsage, quota: QuotaConfiguration) -> None:
    """Print group usage."""
    table = Table(title=f"{current.label_key}={current.label_value} in {current.namespace} ({current.pod_count} pods)")
    table.add_column("Resource")
    table.add_column("Used")
    table.add_column("Ceiling")
    table.add_column("Utilization")

    for label, used, ceiling in (
        ("CPU", current.cpu, quota.cpu_limit),
        ("Memory", current.memory, quota.memory_limit),
    ):
        style = "red" if used > ceiling else "green"
        table.add_row(label, f"[{style}]{used}[/{style}]", str(ceiling), _percent(used, ceiling))

    console.print(table)


def main() -> None:
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
