"""
cert-sync — CLI Entry Point

Usage:
    cert-sync run
    cert-sync once
    cert-sync check
    cert-sync render-config example.com
"""

from __future__ import annotations

# Load .env file FIRST, before any other imports that might read env vars
from pathlib import Path
from dotenv import load_dotenv

_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

import posixpath

import click

from .config.loader import ControllerConfig, load_config
from .controller import Controller
from .engine.syncer import REMOTE_CERT_NAME, REMOTE_KEY_NAME, render_proxy_config
from .errors import CertSyncError, ConfigError
from .logging_config import setup_logging


def _load_or_exit() -> ControllerConfig:
    try:
        config = load_config()
    except ConfigError as e:
        setup_logging()
        click.secho(f"[ERROR] {e}", fg="red", err=True)
        raise SystemExit(1)
    setup_logging(debug=config.debug)
    return config


def _build_or_exit(config: ControllerConfig, probe: bool = True) -> Controller:
    try:
        controller = Controller.from_config(config)
        if probe:
            controller.setup()
    except CertSyncError as e:
        click.secho(f"[ERROR] {e}", fg="red", err=True)
        raise SystemExit(1)
    return controller


@click.group()
def cli() -> None:
    """cert-sync — Sync cluster TLS certificates to an external proxy."""


@cli.command()
def run() -> None:
    """Run the controller until SIGTERM/SIGINT."""
    config = _load_or_exit()
    click.echo("[INIT] Starting cert-sync-controller...")
    controller = _build_or_exit(config)
    controller.run()


@cli.command()
def once() -> None:
    """Run a single reconciliation and exit (1 if any source failed)."""
    config = _load_or_exit()
    controller = _build_or_exit(config)
    result = controller.run_once()

    click.echo("")
    click.echo(f"  Tick ID:      {result.tick_id}")
    click.echo(f"  Found:        {result.found}")
    click.echo(f"  Transferred:  {', '.join(result.transferred) or '-'}")
    click.echo(f"  Unchanged:    {', '.join(result.unchanged) or '-'}")
    click.echo(f"  Duration:     {result.duration_ms}ms")
    if result.failed:
        click.secho(f"  Failed:       {', '.join(result.failed)}", fg="red", bold=True)
        raise SystemExit(1)
    click.secho("✓ All sources in sync", fg="green")


@cli.command()
def check() -> None:
    """Check configuration, cluster access and SSH connectivity."""
    config = _load_or_exit()
    click.secho("✓ Configuration", fg="green")
    for line in config.describe():
        click.echo(f"    {line}")

    controller = _build_or_exit(config, probe=False)

    try:
        controller.cluster.probe()
        click.secho("✓ Kubernetes API reachable", fg="green")
    except CertSyncError as e:
        click.secho(f"✗ {e}", fg="red")
        raise SystemExit(1)

    if controller.probe_remote():
        click.secho(f"✓ SSH to {config.remote_target}", fg="green")
    else:
        click.secho(f"⚠ Cannot connect to {config.remote_target} via SSH", fg="yellow")


@cli.command("render-config")
@click.argument("domain")
@click.option("--cert-dir", envvar="REMOTE_CERT_DIR", default="/opt/traefik/certs", show_default=True)
def render_config(domain: str, cert_dir: str) -> None:
    """Print the proxy config fragment that would be pushed for DOMAIN."""
    remote_dir = posixpath.join(cert_dir.rstrip("/"), domain)
    click.echo(
        render_proxy_config(
            posixpath.join(remote_dir, REMOTE_CERT_NAME),
            posixpath.join(remote_dir, REMOTE_KEY_NAME),
        ),
        nl=False,
    )


if __name__ == "__main__":
    cli()
