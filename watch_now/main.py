"""Entry point for watch-now: the `watch-now` console script."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm

from . import __version__
from .api.server import ApiServer, create_app
from .checks.base import Status
from .config import settings
from .core.engine import Engine
from .core.state import StateStore
from .display import RULE, print_header, render
from .projects.config import (
    ConfigError,
    WatchConfig,
    build_checks,
    dump_config,
    format_seconds,
    load_config,
)
from .projects.detector import ProjectDetector

logger = logging.getLogger(__name__)

console = Console()

CONFIG_HELP = """\
Examples:
  watch-now --init                    Generate configuration for current project
  watch-now --once                    Run monitoring once and exit
  watch-now --config custom.yaml      Use custom configuration file
  watch-now --port 8080               Set API port (enables API)
  watch-now                           Start continuous monitoring

Configuration file format (.watch-now.yaml):
  services:                      # Service health monitoring
    - name: api-server           # Service name
      type: rest                 # Service type (rest/grpc)
      url: http://localhost:8080 # Service URL
      health: /health            # Health endpoint path
      timeout: 5s                # Request timeout

  checks:                        # Code quality checks
    - name: lint                 # Check name
      command: make              # Command to run
      args: ["lint"]             # Command arguments
      timeout: 60s               # Check timeout
      exclusive: true            # Never run alongside other exclusive checks

  interval: 30s                  # Monitoring interval

  api:                           # REST API configuration
    enabled: true                # Enable/disable API
    port: 0                      # API port (0 = ephemeral)

Use --show-examples to see more configuration examples.
"""

EXAMPLES = [
    (
        "1. Simple Go Project",
        """\
checks:
  - name: test
    command: go
    args: ["test", "./..."]
    timeout: 120s
  - name: build
    command: go
    args: ["build", "./..."]
    timeout: 180s
  - name: lint
    command: golangci-lint
    args: ["run"]
    timeout: 60s

interval: 60s""",
    ),
    (
        "2. Node.js Full Stack Application",
        """\
services:
  - name: backend
    type: rest
    url: http://localhost:3000
    health: /api/health
    timeout: 5s
  - name: frontend
    type: rest
    url: http://localhost:3001
    health: /
    timeout: 5s

checks:
  - name: lint
    command: npm
    args: ["run", "lint"]
    timeout: 60s
  - name: test
    command: npm
    args: ["test"]
    timeout: 120s

interval: 30s
api:
  enabled: true
  port: 9090""",
    ),
    (
        "3. Microservices with Auth Headers",
        """\
services:
  - name: auth-service
    type: rest
    url: http://localhost:8080
    health: /health
    timeout: 5s
    headers:
      Authorization: "Bearer dev-token"
  - name: payment-service
    type: rest
    url: http://localhost:8082
    health: /healthz
    timeout: 10s

checks:
  - name: integration-tests
    command: make
    args: ["test-integration"]
    timeout: 300s

interval: 60s
api:
  enabled: true
  port: 0  # Use ephemeral port""",
    ),
    (
        "4. Python Project",
        """\
services:
  - name: model-api
    type: rest
    url: http://localhost:5000
    health: /health
    timeout: 5s

checks:
  - name: pytest
    command: pytest
    args: ["-q"]
    timeout: 180s
  - name: mypy
    command: mypy
    args: ["."]
    timeout: 60s
  - name: ruff
    command: ruff
    args: ["check", "."]
    timeout: 30s
    exclusive: false

interval: 60s""",
    ),
]


# ── Setup ────────────────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="watch-now",
        description="watch-now is a universal development monitor for code quality and service health.",
        epilog=CONFIG_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="store_true", help="Show version information")
    parser.add_argument("--once", action="store_true", help="Run once and exit")
    parser.add_argument(
        "--config", default=settings.config_path, help="Path to configuration file",
    )
    parser.add_argument(
        "--init", action="store_true",
        help="Generate a configuration file for the current project",
    )
    parser.add_argument(
        "--port", type=int, default=0, help="Port for REST API (enables the API)",
    )
    parser.add_argument(
        "--show-examples", action="store_true", help="Show example configurations",
    )
    return parser


def install_signal_handlers(stop_event: threading.Event) -> None:
    """Ctrl+C / SIGTERM set the cancellation event instead of raising."""

    def _handle(signum: int, _frame: object) -> None:
        if not stop_event.is_set():
            console.print("\nShutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, _handle)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle)


def initialize_engine(config_path: str) -> tuple[Engine, WatchConfig]:
    """Load the project file and build the engine. Raises ConfigError."""
    config = load_config(config_path)
    store = StateStore(queue_size=settings.subscriber_queue_size)
    engine = Engine(
        build_checks(config),
        interval=config.interval,
        store=store,
        max_workers=settings.max_workers or None,
    )
    return engine, config


# ── Modes ────────────────────────────────────────────────────────────────────


def run_once(
    engine: Engine,
    stop_event: threading.Event,
    timeout: float | None = None,
    out: Console | None = None,
) -> int:
    """Run until the first full round lands, render it, and return an exit code."""
    out = out or console
    thread = engine.start_background(stop_event)
    try:
        engine.wait_for_results(
            settings.once_timeout if timeout is None else timeout, stop_event,
        )
        status = render(out, engine.state.get_all())
    finally:
        stop_event.set()
        thread.join(timeout=5.0)
    return 1 if status == Status.FAIL else 0


def run_continuous(
    engine: Engine,
    config: WatchConfig,
    stop_event: threading.Event,
    out: Console | None = None,
) -> None:
    out = out or console
    out.print(f"Monitoring every {format_seconds(config.interval)}. Press Ctrl+C to stop.")

    api_server: ApiServer | None = None
    if config.api.enabled:
        api_server = ApiServer(
            create_app(engine.state), host=settings.api_host, port=config.api.port,
        )
        api_server.start()
        out.print(f"API enabled at {api_server.url}")
        out.print(f"  Status: {api_server.url}/api/status")
        out.print(f"  Events: {api_server.url}/api/events")
    out.print(RULE)

    thread = engine.start_background(stop_event)
    try:
        engine.wait_for_results(settings.first_round_timeout, stop_event)
        render(out, engine.state.get_all())
        while not stop_event.wait(settings.display_interval):
            out.clear()
            render(out, engine.state.get_all())
    finally:
        stop_event.set()
        if api_server is not None:
            api_server.stop()
        thread.join(timeout=10.0)


def generate_config(config_path: str, assume_yes: bool = False, out: Console | None = None) -> bool:
    """Detect the project in the current directory and write a config file."""
    out = out or console
    out.print("watch-now Configuration Generator", style="bold")
    out.print(RULE)

    path = Path(config_path)
    if path.exists() and not assume_yes:
        out.print(f"[yellow]WARNING:[/yellow] Configuration file {path} already exists.")
        if not Confirm.ask("Overwrite?", default=False, console=out):
            out.print("Configuration generation cancelled.")
            return False

    out.print(f"Analyzing project in {os.getcwd()}...")
    detector = ProjectDetector(".")
    info = detector.detect()
    config = detector.generate_config(info)
    path.write_text(dump_config(config, info.type), encoding="utf-8")

    out.print(f"\n[green]✓[/green] Configuration generated: {path}")
    out.print(f"Project type: {info.type}")
    out.print(f"Services detected: {len(info.services)}")
    out.print(f"Quality checks: {len(info.quality_checks)}")
    if info.services:
        out.print("\nDetected services:")
        for s in info.services:
            out.print(f"  - {s.name} ({s.url}{s.health})", markup=False)
    if info.quality_checks:
        out.print("\nQuality checks:")
        for c in info.quality_checks:
            out.print(f"  - {c.name}: {c.command} {' '.join(c.args)}", markup=False)
    out.print("\n[blue]TIP:[/blue] Run 'watch-now --once' to test your configuration")
    return True


def show_examples(out: Console | None = None) -> None:
    out = out or console
    out.print("watch-now Example Configurations", style="bold")
    out.print(RULE)
    for title, body in EXAMPLES:
        out.print(f"\n{title}", style="blue")
        out.print("-" * 30)
        out.print(body, markup=False, highlight=False)
    out.print(f"\n{RULE}")
    out.print("To use any example:")
    out.print("1. Copy the configuration to .watch-now.yaml")
    out.print("2. Adjust ports, commands, and timeouts for your project")
    out.print("3. Run 'watch-now' to start monitoring")
    out.print("\nOr use 'watch-now --init' to auto-generate a configuration for your project.")


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    if args.version:
        console.print(f"watch-now {__version__}")
        return
    if args.show_examples:
        show_examples()
        return
    if args.init:
        generate_config(args.config)
        return

    try:
        engine, config = initialize_engine(args.config)
    except ConfigError as e:
        console.print(Panel(str(e), title="Error loading config", style="bold red"))
        sys.exit(1)

    if args.port:
        config.api.port = args.port
        config.api.enabled = True

    print_header(console)

    stop_event = threading.Event()
    install_signal_handlers(stop_event)

    if args.once:
        sys.exit(run_once(engine, stop_event))
    run_continuous(engine, config, stop_event)


if __name__ == "__main__":
    main()
