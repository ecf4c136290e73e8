#!/usr/bin/env python3
"""Weighbridge Bridge CLI - relays device byte streams to WebSocket clients.

RFID readers connect to the bridge's TCP listener, the bridge connects out to
the weight scale terminal, and browsers subscribe to one WebSocket server per
channel to receive the raw readings.

Examples:
    # Run with the factory defaults
    python bridge.py start

    # Point at a different scale terminal
    python bridge.py start --weight-host 192.168.1.50 --weight-port 7000

    # Load settings from a file, overriding one value
    python bridge.py start --config bridge.yaml --rfid-ws-port 9080
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

# Ensure the weighbridge package is importable
if __name__ == "__main__":
    import os
    sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from weighbridge.bridge import BindError, BridgeConfig, BridgeRouter, ConfigError, load_config
from weighbridge.bridge.config import (
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_RFID_TCP_PORT,
    DEFAULT_RFID_WS_PORT,
    DEFAULT_WEIGHT_HOST,
    DEFAULT_WEIGHT_PORT,
    DEFAULT_WEIGHT_WS_PORT,
)

app = typer.Typer(
    name="bridge",
    help="Weighbridge Bridge - RFID and weight scale to WebSocket relay",
    add_completion=False,
)
console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich output."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )
    # websockets logs every handshake at INFO
    logging.getLogger("websockets").setLevel(logging.DEBUG if verbose else logging.WARNING)


def build_config(
    config_path: Optional[Path],
    ws_host: Optional[str],
    rfid_host: Optional[str],
    rfid_port: Optional[int],
    rfid_ws_port: Optional[int],
    weight_host: Optional[str],
    weight_port: Optional[int],
    weight_ws_port: Optional[int],
    reconnect_delay: Optional[float],
) -> BridgeConfig:
    """Merge command-line overrides onto the file (or default) config."""
    cfg = load_config(config_path) if config_path else BridgeConfig()

    if ws_host is not None:
        cfg.ws_host = ws_host
    if rfid_host is not None:
        cfg.rfid.host = rfid_host
    if rfid_port is not None:
        cfg.rfid.port = rfid_port
    if rfid_ws_port is not None:
        cfg.rfid.ws_port = rfid_ws_port
    if weight_host is not None:
        cfg.weight.host = weight_host
    if weight_port is not None:
        cfg.weight.port = weight_port
    if weight_ws_port is not None:
        cfg.weight.ws_port = weight_ws_port
    if reconnect_delay is not None:
        cfg.weight.reconnect_delay = reconnect_delay

    cfg.validate()
    return cfg


def config_table(cfg: BridgeConfig) -> Table:
    table = Table(title="Bridge Configuration", show_header=True)
    table.add_column("Channel", style="cyan")
    table.add_column("Device", style="green")
    table.add_column("WebSocket", style="yellow")
    table.add_row(
        "RFID",
        f"listen {cfg.rfid.host}:{cfg.rfid.port}",
        f"ws://{cfg.ws_host}:{cfg.rfid.ws_port}",
    )
    table.add_row(
        "Weight",
        f"connect {cfg.weight.host}:{cfg.weight.port} (retry {cfg.weight.reconnect_delay:g}s)",
        f"ws://{cfg.ws_host}:{cfg.weight.ws_port}",
    )
    return table


def format_stats(stats: dict) -> str:
    parts = []
    for name, ch in stats["channels"].items():
        detail = f"{ch['subscribers']} subscribers, {ch['messages_published']} messages"
        if "state" in ch:
            detail += f", {ch['state']}"
        if "peers" in ch:
            detail += f", {ch['peers']} peers"
        parts.append(f"{name}: {detail}")
    return "Stats: " + "; ".join(parts)


@app.command()
def start(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="JSON or YAML configuration file",
    ),
    ws_host: Optional[str] = typer.Option(
        None,
        "--ws-host",
        help="Host address to bind the WebSocket servers (default: 0.0.0.0)",
    ),
    rfid_host: Optional[str] = typer.Option(
        None,
        "--rfid-host",
        help="Host address to bind the RFID TCP listener (default: 0.0.0.0)",
    ),
    rfid_port: Optional[int] = typer.Option(
        None,
        "--rfid-port",
        "-rp",
        help=f"TCP port RFID readers connect to (default: {DEFAULT_RFID_TCP_PORT})",
    ),
    rfid_ws_port: Optional[int] = typer.Option(
        None,
        "--rfid-ws-port",
        help=f"WebSocket port for RFID subscribers (default: {DEFAULT_RFID_WS_PORT})",
    ),
    weight_host: Optional[str] = typer.Option(
        None,
        "--weight-host",
        "-wh",
        help=f"Host address of the weight scale terminal (default: {DEFAULT_WEIGHT_HOST})",
    ),
    weight_port: Optional[int] = typer.Option(
        None,
        "--weight-port",
        "-wp",
        help=f"TCP port of the weight scale terminal (default: {DEFAULT_WEIGHT_PORT})",
    ),
    weight_ws_port: Optional[int] = typer.Option(
        None,
        "--weight-ws-port",
        help=f"WebSocket port for weight subscribers (default: {DEFAULT_WEIGHT_WS_PORT})",
    ),
    reconnect_delay: Optional[float] = typer.Option(
        None,
        "--reconnect-delay",
        "-r",
        help=f"Seconds between weight scale reconnect attempts (default: {DEFAULT_RECONNECT_DELAY:g})",
    ),
    stats_interval: float = typer.Option(
        60.0,
        "--stats-interval",
        help="Seconds between statistics lines (0 disables)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging (includes every received payload)",
    ),
) -> None:
    """Start the device bridge.

    Binds the RFID TCP listener and both WebSocket servers, then connects to
    the weight scale. Any port that cannot be bound aborts startup.
    """
    setup_logging(verbose)

    try:
        cfg = build_config(
            config,
            ws_host,
            rfid_host,
            rfid_port,
            rfid_ws_port,
            weight_host,
            weight_port,
            weight_ws_port,
            reconnect_delay,
        )
    except (ConfigError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(config_table(cfg))
    console.print()

    router = BridgeRouter.from_config(cfg)

    console.print(Panel.fit("[bold green]Starting bridge...[/bold green]"))

    async def run() -> int:
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        def signal_handler():
            console.print("\n[yellow]Shutting down...[/yellow]")
            stop_event.set()

        try:
            loop.add_signal_handler(signal.SIGINT, signal_handler)
            loop.add_signal_handler(signal.SIGTERM, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

        try:
            await router.start()
        except BindError as e:
            logging.getLogger("weighbridge").critical("Fatal startup error: %s", e)
            return 1

        console.print("[bold green]Bridge running. Press Ctrl+C to stop.[/bold green]")
        try:
            while not stop_event.is_set():
                timeout = stats_interval if stats_interval > 0 else None
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=timeout)
                except asyncio.TimeoutError:
                    console.print(f"[dim]{format_stats(router.get_stats())}[/dim]")
        finally:
            await router.stop()
            console.print("[green]Bridge stopped.[/green]")
        return 0

    try:
        code = asyncio.run(run())
    except KeyboardInterrupt:
        code = 0
    if code:
        raise typer.Exit(code)


@app.command()
def info() -> None:
    """Display bridge channels and default settings."""
    console.print(
        Panel.fit(
            "[bold]Weighbridge Bridge[/bold]\n\n"
            "Relays raw device byte streams to browser clients over WebSocket.\n"
            "Every chunk read from a device becomes one text frame, unmodified.\n\n"
            "[bold]Channels:[/bold]\n"
            f"  • RFID   - readers connect to TCP {DEFAULT_RFID_TCP_PORT}, "
            f"subscribers use ws port {DEFAULT_RFID_WS_PORT}\n"
            f"  • Weight - bridge connects to {DEFAULT_WEIGHT_HOST}:{DEFAULT_WEIGHT_PORT}, "
            f"subscribers use ws port {DEFAULT_WEIGHT_WS_PORT}\n\n"
            "[bold]Behaviour:[/bold]\n"
            f"  • Weight scale link reconnects every {DEFAULT_RECONNECT_DELAY:g}s while down\n"
            "  • Clients that are not connected miss messages (no replay)\n"
            "  • A port that is already in use aborts startup\n",
            title="About",
        )
    )


if __name__ == "__main__":
    app()
