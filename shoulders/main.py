"""Shoulders CLI - open in-cluster UIs and logs through port-forwards.

Usage:
  shoulders dashboard              # Grafana on http://localhost:3000
  shoulders headlamp               # Headlamp on http://localhost:4466/shoulders
  shoulders logs my-app -n team-a  # Loki query, or pod logs as fallback

Commands:
  dashboard    Open the Grafana dashboard
  headlamp     Open the Headlamp UI
  logs         Fetch application logs
"""

import argparse
import asyncio
import signal
import sys
import webbrowser
from typing import Optional, Sequence

import structlog
from rich.console import Console

from ._version import __version__
from .config import Settings, settings
from .models.errors import ShouldersException, TunnelCancelledError
from .services.credentials import get_first_service_account_token, get_grafana_credentials
from .services.kubernetes import ServiceTunnelManager
from .services.logs import LogService
from .utils.logging import setup_logging

console = Console()
err_console = Console(stderr=True)
logger = structlog.get_logger(__name__)

HEADLAMP_SERVICE_ACCOUNTS = ("headlamp", "default")


def install_cancel_handlers(cancel: asyncio.Event) -> None:
    """Set the cancel event on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel.set)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(cancel.set))


async def open_browser_later(url: str, delay: float) -> None:
    """Open a browser tab once the tunnel has had time to settle."""
    await asyncio.sleep(delay)
    if not webbrowser.open(url):
        logger.info("No browser available", url=url)


def build_tunnel_manager(cfg: Settings) -> ServiceTunnelManager:
    return ServiceTunnelManager.from_config(cfg.kubernetes)


async def hold_tunnel(cfg: Settings, url: str, cancel: asyncio.Event) -> None:
    """Keep the tunnel open until the user interrupts."""
    browser_task = None
    if cfg.open_browser:
        browser_task = asyncio.create_task(open_browser_later(url, cfg.browser_delay))

    console.print(f"Forwarding [bold]{url}[/bold] (Ctrl+C to stop)")
    try:
        await cancel.wait()
    finally:
        if browser_task is not None:
            browser_task.cancel()


async def cmd_dashboard(args, cfg: Settings) -> int:
    cancel = asyncio.Event()
    install_cancel_handlers(cancel)

    target = cfg.grafana
    manager = build_tunnel_manager(cfg)
    async with manager.tunnel(target.namespace, target.service, target.local_port, target.port, cancel) as handle:
        creds = await get_grafana_credentials(manager.cluster, target.namespace, cfg.grafana_secret)
        console.print("Grafana credentials:")
        console.print(f"  user: {creds.username}")
        console.print(f"  password: {creds.password}")

        await hold_tunnel(cfg, handle.url(target.path), cancel)
    return 0


async def cmd_headlamp(args, cfg: Settings) -> int:
    cancel = asyncio.Event()
    install_cancel_handlers(cancel)

    target = cfg.headlamp
    manager = build_tunnel_manager(cfg)

    found = await get_first_service_account_token(manager.cluster, target.namespace, HEADLAMP_SERVICE_ACCOUNTS)
    if found is None:
        console.print("Unable to fetch a Headlamp token automatically.")
    else:
        service_account, token = found
        console.print(f"Headlamp token (service account {target.namespace}/{service_account}):")
        console.print(token, soft_wrap=True)

    async with manager.tunnel(target.namespace, target.service, target.local_port, target.port, cancel) as handle:
        await hold_tunnel(cfg, handle.url(target.path), cancel)
    return 0


async def cmd_logs(args, cfg: Settings) -> int:
    manager = build_tunnel_manager(cfg)
    service = LogService(
        manager.cluster,
        manager,
        cfg.loki,
        query_timeout=cfg.loki_query_timeout,
    )
    source = await service.fetch(args.namespace or cfg.namespace, args.app)
    logger.debug("Fetched logs", app=args.app, source=source)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shoulders",
        description="Developer CLI for the Shoulders IDP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--kubeconfig", help="Path to kubeconfig file")
    parser.add_argument("--context", help="Kubeconfig context to use")
    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--no-browser", action="store_true", help="Do not open a browser")

    subparsers = parser.add_subparsers(dest="command", required=True)

    dashboard_p = subparsers.add_parser("dashboard", help="Open Grafana dashboard")
    dashboard_p.set_defaults(handler=cmd_dashboard)

    headlamp_p = subparsers.add_parser("headlamp", help="Open Headlamp UI")
    headlamp_p.set_defaults(handler=cmd_headlamp)

    logs_p = subparsers.add_parser("logs", help="Fetch application logs (Loki if available)")
    logs_p.add_argument("app", help="Application name (value of the app label)")
    logs_p.add_argument("-n", "--namespace", help="Namespace of the application")
    logs_p.set_defaults(handler=cmd_logs)

    return parser


def resolve_settings(args, base: Settings = settings) -> Settings:
    """Apply command line overrides on top of environment settings."""
    overrides = {}
    if args.kubeconfig:
        overrides["kubeconfig"] = args.kubeconfig
    if args.context:
        overrides["kube_context"] = args.context
    if args.no_browser:
        overrides["open_browser"] = False
    if overrides or args.log_level:
        return Settings(**{**base.model_dump(), **overrides, "log_level": args.log_level or base.log_level})
    return base


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    cfg = resolve_settings(args)
    setup_logging(cfg.logging)

    try:
        return asyncio.run(args.handler(args, cfg))
    except TunnelCancelledError:
        err_console.print("[yellow]Cancelled[/yellow]")
        return 130
    except ShouldersException as e:
        logger.debug("Command failed", **e.to_dict())
        err_console.print(f"[red]Error:[/red] {e.message}")
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
