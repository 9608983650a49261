"""Project configuration: loads .watch-now.yaml into typed models.

This is the adapter between the YAML file and the core: it validates the
file, applies defaults, decides which quality checks need the exclusive
linter lock, and constructs the ``Check`` objects the engine runs.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ..checks import Check, CommandCheck, HttpCheck

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 60.0
DEFAULT_SERVICE_TIMEOUT = 10.0
DEFAULT_CHECK_TIMEOUT = 30.0
DEFAULT_HEALTH_PATH = "/health"

SERVICE_TYPES = ("rest", "grpc")


class ConfigError(Exception):
    """The project file is missing, unreadable, or malformed."""


# ── Data models ──────────────────────────────────────────────────────────────


@dataclass
class ServiceConfig:
    """A service whose health endpoint is probed over the network."""

    name: str
    type: str = "rest"  # rest | grpc (reserved)
    url: str = ""
    health: str = DEFAULT_HEALTH_PATH
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float = DEFAULT_SERVICE_TIMEOUT


@dataclass
class CheckConfig:
    """A command run as a code-quality gate."""

    name: str
    command: str
    args: list[str] = field(default_factory=list)
    timeout: float = DEFAULT_CHECK_TIMEOUT
    exclusive: bool = False  # serialize with other exclusive checks


@dataclass
class ApiConfig:
    enabled: bool = False
    port: int = 0  # 0 = ephemeral


@dataclass
class WatchConfig:
    services: list[ServiceConfig] = field(default_factory=list)
    checks: list[CheckConfig] = field(default_factory=list)
    interval: float = DEFAULT_INTERVAL
    api: ApiConfig = field(default_factory=ApiConfig)


# ── Durations ────────────────────────────────────────────────────────────────

_UNITS = {"ns": 1e-9, "us": 1e-6, "µs": 1e-6, "ms": 1e-3, "s": 1.0, "m": 60.0, "h": 3600.0}
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: Any) -> float:
    """Parse ``"5s"``, ``"1m30s"``, ``"250ms"`` or a bare number of seconds."""
    if isinstance(value, bool):
        raise ConfigError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ConfigError(f"Duration must not be negative: {value!r}")
        return float(value)
    if not isinstance(value, str):
        raise ConfigError(f"Invalid duration: {value!r}")

    text = value.strip()
    if text == "0":
        return 0.0
    try:
        return float(text)
    except ValueError:
        pass

    pos = 0
    total = 0.0
    for m in _DURATION_PART.finditer(text):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _UNITS[m.group(2)]
        pos = m.end()
    if pos == 0 or pos != len(text):
        raise ConfigError(f"Invalid duration: {value!r}")
    return total


def format_seconds(seconds: float) -> str:
    """Inverse of ``parse_duration`` for the generated config file."""
    if float(seconds).is_integer():
        return f"{int(seconds)}s"
    return f"{seconds:g}s"


# ── Loading ──────────────────────────────────────────────────────────────────


def load_config(path: str | Path) -> WatchConfig:
    """Read and validate a project file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path} (run with --init to generate one)") from e
    except OSError as e:
        raise ConfigError(f"Reading config file {path}: {e}") from e

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Parsing config {path}: {e}") from e

    config = parse_config(raw or {})
    logger.info(
        "Loaded %s: %d services, %d checks, interval %s",
        path, len(config.services), len(config.checks), format_seconds(config.interval),
    )
    return config


def parse_config(raw: dict[str, Any]) -> WatchConfig:
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a mapping")

    services = [_parse_service(s, i) for i, s in enumerate(raw.get("services") or [])]
    checks = [_parse_check(c, i) for i, c in enumerate(raw.get("checks") or [])]

    seen: set[str] = set()
    for name in [s.name for s in services] + [c.name for c in checks]:
        if name in seen:
            raise ConfigError(f"Duplicate name {name!r}: service and check names must be unique")
        seen.add(name)

    interval = DEFAULT_INTERVAL
    if raw.get("interval") not in (None, "", 0):
        interval = parse_duration(raw["interval"])
        if interval <= 0:
            interval = DEFAULT_INTERVAL

    raw_api = raw.get("api") or {}
    if not isinstance(raw_api, dict):
        raise ConfigError("'api' must be a mapping")
    enabled = raw_api.get("enabled", False)
    if not isinstance(enabled, bool):
        raise ConfigError("'api.enabled' must be true or false")
    try:
        api = ApiConfig(enabled=enabled, port=int(raw_api.get("port") or 0))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid api port: {raw_api.get('port')!r}") from e

    return WatchConfig(services=services, checks=checks, interval=interval, api=api)


def _parse_service(raw: Any, index: int) -> ServiceConfig:
    if not isinstance(raw, dict):
        raise ConfigError(f"services[{index}] must be a mapping")
    name = str(raw.get("name") or "").strip()
    if not name:
        raise ConfigError(f"services[{index}] is missing 'name'")
    url = str(raw.get("url") or "").strip()
    if not url:
        raise ConfigError(f"Service {name!r} is missing 'url'")

    headers = raw.get("headers") or {}
    if not isinstance(headers, dict):
        raise ConfigError(f"Service {name!r}: 'headers' must be a mapping")

    timeout = raw.get("timeout")
    return ServiceConfig(
        name=name,
        type=str(raw.get("type") or "rest").lower(),
        url=url.rstrip("/"),
        health=str(raw.get("health") or DEFAULT_HEALTH_PATH),
        headers={str(k): str(v) for k, v in headers.items()},
        timeout=parse_duration(timeout) if timeout else DEFAULT_SERVICE_TIMEOUT,
    )


def _parse_check(raw: Any, index: int) -> CheckConfig:
    if not isinstance(raw, dict):
        raise ConfigError(f"checks[{index}] must be a mapping")
    name = str(raw.get("name") or "").strip()
    if not name:
        raise ConfigError(f"checks[{index}] is missing 'name'")
    command = str(raw.get("command") or "").strip()
    if not command:
        raise ConfigError(f"Check {name!r} is missing 'command'")

    args = raw.get("args") or []
    if isinstance(args, str):
        args = args.split()
    if not isinstance(args, list):
        raise ConfigError(f"Check {name!r}: 'args' must be a list")
    args = [str(a) for a in args]

    exclusive = raw.get("exclusive")
    if exclusive is None:
        exclusive = looks_like_exclusive_linter(command, args)
    elif not isinstance(exclusive, bool):
        raise ConfigError(f"Check {name!r}: 'exclusive' must be true or false")

    timeout = raw.get("timeout")
    return CheckConfig(
        name=name,
        command=command,
        args=args,
        timeout=parse_duration(timeout) if timeout else DEFAULT_CHECK_TIMEOUT,
        exclusive=exclusive,
    )


def looks_like_exclusive_linter(command: str, args: list[str]) -> bool:
    """golangci-lint takes an exclusive file lock; ``make lint`` usually runs it."""
    if "golangci-lint" in command:
        return True
    return any("lint" in a for a in args)


# ── Check construction ───────────────────────────────────────────────────────


def build_checks(config: WatchConfig) -> list[Check]:
    """Turn a validated config into the ordered check list for the engine."""
    checks: list[Check] = []
    for s in config.services:
        if s.type == "rest":
            checks.append(
                HttpCheck(
                    name=s.name, url=s.url, health=s.health,
                    timeout=s.timeout, headers=s.headers,
                )
            )
        elif s.type == "grpc":
            logger.warning("gRPC monitor not yet implemented for %s, skipping", s.name)
        else:
            logger.warning("Unknown service type %r for %s, skipping", s.type, s.name)

    for c in config.checks:
        checks.append(
            CommandCheck(
                name=c.name, command=c.command, args=c.args,
                timeout=c.timeout, requires_exclusive_lock=c.exclusive,
            )
        )
    return checks


# ── Generation ───────────────────────────────────────────────────────────────


def config_to_dict(config: WatchConfig) -> dict[str, Any]:
    return {
        "services": [
            {
                "name": s.name,
                "type": s.type,
                "url": s.url,
                "health": s.health,
                **({"headers": dict(s.headers)} if s.headers else {}),
                "timeout": format_seconds(s.timeout),
            }
            for s in config.services
        ],
        "checks": [
            {
                "name": c.name,
                "command": c.command,
                "args": list(c.args),
                "timeout": format_seconds(c.timeout),
                **({"exclusive": True} if c.exclusive else {}),
            }
            for c in config.checks
        ],
        "interval": format_seconds(config.interval),
        "api": {"enabled": config.api.enabled, "port": config.api.port},
    }


def dump_config(config: WatchConfig, project_type: str = "unknown") -> str:
    """Render a commented YAML project file."""
    data = config_to_dict(config)

    def _block(key: str) -> str:
        return yaml.safe_dump(
            {key: data[key]}, sort_keys=False, default_flow_style=False, allow_unicode=True,
        )

    parts = [
        f"# watch-now configuration for {project_type} project\n",
        "# Generated automatically - customize as needed\n\n",
    ]
    if config.services:
        parts += ["# Service health monitoring\n", _block("services"), "\n"]
    else:
        parts += ["# No services detected - add them manually if needed\n", "services: []\n\n"]
    if config.checks:
        parts += ["# Code quality checks\n", _block("checks"), "\n"]
    else:
        parts += ["# No quality checks detected - add them manually\n", "checks: []\n\n"]
    parts += ["# Monitoring interval\n", _block("interval"), "\n"]
    parts += ["# REST API and SSE for web UI integration (port 0 = ephemeral)\n", _block("api")]
    return "".join(parts)
