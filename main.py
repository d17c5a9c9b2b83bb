#!/usr/bin/env python3
"""
Tailscale Router
================

Main entry point for the router daemon.

Toggles this host's outbound routing between "direct" (out of the
host's own WAN interface) and "through a Tailscale exit node", keeps the
choice across restarts, and serves a small authenticated dashboard.

Network Topology:
  LAN devices -> [ROUTER] -> WAN -> internet                     (direct)
  LAN devices -> [ROUTER] -> tailscale0 -> exit node -> internet (exit node)

Usage:
    sudo python main.py              # Start the daemon
    sudo python main.py --debug      # Enable debug logging
    python main.py --skip-checks     # Skip root/tailscale checks (testing only)
"""

import os
import shutil
import signal
import sys
from pathlib import Path
from typing import List, Tuple

import click
import yaml
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.text import Text
from werkzeug.serving import make_server

from api.app import create_app
from core.api_auth import SessionAuth
from core.background import BackgroundTasks
from core.config import RouterConfig, create_router_config
from core.exit_nodes import ExitNodeDirectory
from core.interfaces import InterfaceDetector
from core.mode import ModeStore
from core.restorer import StartupRestorer
from core.routing import RoutingConfigurator
from core.state_machine import ModeStateMachine
from core.system_runner import SystemCommandRunner
from core.tailscale_client import TailscaleClient

PROJECT_ROOT = Path(__file__).parent
console = Console()


def load_config(config_path: str = "config/config.yaml") -> dict:
    """Load configuration from YAML file."""
    config_file = Path(config_path)
    if not config_file.is_absolute() and not config_file.exists():
        config_file = PROJECT_ROOT / config_path

    if not config_file.exists():
        logger.error(f"Config file not found: {config_file}")
        sys.exit(1)

    with open(config_file, "r") as f:
        config = yaml.safe_load(f) or {}

    for section in ("general", "logging", "api", "auth", "router"):
        config.setdefault(section, {})

    return config


def setup_logging(config: dict) -> None:
    """Configure logging based on config."""
    log_config = config.get("logging", {})
    log_level = config.get("general", {}).get("log_level", "INFO")
    log_file = Path(log_config.get("file", "data/logs/tailscale-router.log"))
    if not log_file.is_absolute():
        log_file = PROJECT_ROOT / log_file

    log_file.parent.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        sys.stderr,
        level=log_level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> | <level>{message}</level>"
    )
    logger.add(
        str(log_file),
        level=log_level,
        rotation=log_config.get("max_size", "10 MB"),
        retention=log_config.get("backup_count", 5),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name} | {message}"
    )


def print_banner():
    console.print(Panel(
        Text("Tailscale Router", style="bold cyan", justify="center"),
        title="[bold white]Exit Node Routing Control[/bold white]",
        subtitle="[dim]direct | tailscale exit node[/dim]",
        border_style="cyan"
    ))


def check_prerequisites(client: TailscaleClient) -> Tuple[bool, List[str]]:
    """
    Check startup preconditions.
    Returns (success, list_of_issues).
    """
    issues = []

    if os.geteuid() != 0:
        issues.append("This program must be run as root. Try using: sudo python main.py")

    required_tools = ["iptables", "ip", "sysctl"]
    for tool in required_tools:
        if shutil.which(tool) is None:
            issues.append(f"Missing required tool: {tool}")

    if not client.is_installed():
        issues.append("Tailscale is not installed. Please install it using: sudo apt install tailscale")
    elif not client.is_running():
        issues.append("Tailscale is not running. Start it using: sudo systemctl start tailscaled && sudo tailscale up")

    return len(issues) == 0, issues


class RouterDaemon:
    """
    Wires the router components together and runs the HTTP server.

    Components:
    - SystemCommandRunner: external tool execution
    - TailscaleClient / ExitNodeDirectory: exit node discovery
    - InterfaceDetector: WAN/LAN detection
    - RoutingConfigurator: NAT and forwarding rules
    - ModeStateMachine: serialized mode transitions
    - StartupRestorer: re-applies the persisted mode after start
    """

    def __init__(self, config: dict):
        self.config = config
        self.router_config: RouterConfig = create_router_config(config)
        rc = self.router_config

        self.runner = SystemCommandRunner(timeout=rc.command_timeout)
        self.client = TailscaleClient(self.runner)
        self.directory = ExitNodeDirectory(self.client)
        self.detector = InterfaceDetector(self.runner, vpn_interface=rc.vpn_interface)
        self.tasks = BackgroundTasks(max_workers=rc.background_workers)
        self.store = ModeStore(rc.mode_file)

        self.configurator = RoutingConfigurator(
            self.runner, self.client, self.directory, self.detector, self.tasks, rc
        )
        self.state_machine = ModeStateMachine(self.configurator, self.store, self.directory)
        self.restorer = StartupRestorer(
            self.directory,
            self.state_machine,
            self.store,
            attempts=rc.restore_attempts,
            interval=rc.restore_interval,
        )

        self.app = create_app(
            config, self.state_machine, self.client, SessionAuth(config.get("auth", {}))
        )
        self.server = None

        logger.info("Router components initialized successfully")

    def start(self):
        """Bind the HTTP server, kick off the restorer, then serve forever."""
        host = self.config.get("api", {}).get("host", "0.0.0.0")
        port = self.config.get("api", {}).get("port", 5000)

        self.server = make_server(host, port, self.app, threaded=True)
        logger.info(f"Starting server on {host}:{port}")
        console.print(f"[bold green]Tailscale Router started[/bold green]")
        console.print(f"[dim]Dashboard: http://localhost:{port}[/dim]\n")

        self.restorer.start()
        self.server.serve_forever()

    def stop(self):
        """Close the listening socket and drop pending background work."""
        logger.info("Stopping Tailscale Router...")
        if self.server:
            self.server.server_close()
        self.tasks.shutdown(wait=False)


@click.command()
@click.option("--config", "-c", default="config/config.yaml", help="Path to config file")
@click.option("--debug", "-d", is_flag=True, help="Enable debug logging")
@click.option("--host", default=None, help="Bind address")
@click.option("--port", "-p", default=None, type=int, help="Dashboard port")
@click.option("--skip-checks", is_flag=True, help="Skip startup checks (testing only)")
def main(config: str, debug: bool, host: str, port: int, skip_checks: bool):
    """
    Tailscale Router - switch this host between direct routing and a
    Tailscale exit node.

    Requirements:
      - Root privileges (sudo)
      - tailscale installed and running
      - iptables, ip, sysctl available
    """
    print_banner()

    cfg = load_config(config)

    if debug:
        cfg["general"]["debug"] = True
        cfg["general"]["log_level"] = "DEBUG"
    if host:
        cfg["api"]["host"] = host
    if port:
        cfg["api"]["port"] = port

    setup_logging(cfg)

    if not skip_checks:
        console.print("[dim]Checking prerequisites...[/dim]")
        client = TailscaleClient(SystemCommandRunner(
            timeout=create_router_config(cfg).command_timeout
        ))
        ready, issues = check_prerequisites(client)

        if not ready:
            console.print("\n[bold red]PREREQUISITES NOT MET:[/bold red]")
            for issue in issues:
                console.print(f"  [red]x[/red] {issue}")
                logger.error(issue)
            sys.exit(1)

        logger.info("Tailscale is installed and running.")
        console.print("[green]All prerequisites met[/green]")

        if client.provider_exit_nodes_enabled():
            console.print("[dim]Mullvad exit nodes available[/dim]\n")
        else:
            logger.info("Mullvad exit nodes not offered to this device")
            console.print()

    daemon = RouterDaemon(cfg)

    # serve_forever runs on this thread, so unwind it with SystemExit
    def signal_handler(signum, frame):
        console.print("\n[yellow]Shutting down Tailscale Router...[/yellow]")
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        daemon.start()
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)
    finally:
        daemon.stop()


if __name__ == "__main__":
    main()
