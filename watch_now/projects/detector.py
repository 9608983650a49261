"""Project detection: guesses services and quality checks for --init."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from .config import (
    ApiConfig,
    CheckConfig,
    ServiceConfig,
    WatchConfig,
    looks_like_exclusive_linter,
)

logger = logging.getLogger(__name__)

# Make targets worth watching, in display order
COMMON_MAKE_TARGETS = ("fmt", "format", "lint", "test", "complexity", "deadcode", "docs")

TARGET_TIMEOUTS = {
    "fmt": 30.0,
    "format": 30.0,
    "lint": 60.0,
    "test": 120.0,
    "build": 180.0,
    "complexity": 30.0,
    "deadcode": 30.0,
    "docs": 60.0,
}
DEFAULT_TARGET_TIMEOUT = 30.0

# backend/services layout uses fixed, even-numbered ports
KNOWN_SERVICE_PORTS = {
    "iam": 35050,
    "social": 35052,
    "analytics": 35054,
    "gaming": 35056,
    "notification": 35058,
    "logging": 35062,
}

_MAKE_TARGET = re.compile(r"^([A-Za-z0-9][A-Za-z0-9_.-]*)\s*:(?!=)", re.MULTILINE)


@dataclass
class ProjectInfo:
    type: str = "unknown"
    services: list[ServiceConfig] = field(default_factory=list)
    quality_checks: list[CheckConfig] = field(default_factory=list)
    has_makefile: bool = False
    has_package_json: bool = False
    has_go_mod: bool = False
    has_docker_compose: bool = False


class ProjectDetector:
    """Inspects a project directory and proposes a ``WatchConfig``."""

    def __init__(self, path: str | Path = ".") -> None:
        self.path = Path(path)

    def detect(self) -> ProjectInfo:
        info = ProjectInfo(
            has_makefile=self._exists("Makefile"),
            has_package_json=self._exists("package.json"),
            has_go_mod=self._exists("go.mod"),
            has_docker_compose=self._exists("docker-compose.yml") or self._exists("docker-compose.yaml"),
        )
        info.type = self._project_type(info)
        info.quality_checks = self._quality_checks(info)
        if self._looks_like_service_project():
            info.services = self._detect_services(reserved={c.name for c in info.quality_checks})

        logger.info(
            "Detected %s project: %d services, %d checks",
            info.type, len(info.services), len(info.quality_checks),
        )
        return info

    def generate_config(self, info: ProjectInfo | None = None) -> WatchConfig:
        info = info or self.detect()
        return WatchConfig(
            services=list(info.services),
            checks=list(info.quality_checks),
            interval=30.0,
            api=ApiConfig(enabled=True, port=0),
        )

    # ── Project type ─────────────────────────────────────────────────────────

    def _project_type(self, info: ProjectInfo) -> str:
        if self._is_monorepo():
            return "monorepo"
        if info.has_go_mod:
            return "go"
        if info.has_package_json:
            return "node"
        if self._exists("requirements.txt") or self._exists("pyproject.toml"):
            return "python"
        if self._exists("pom.xml") or self._exists("build.gradle"):
            return "java"
        if self._exists("Cargo.toml"):
            return "rust"
        return "unknown"

    def _is_monorepo(self) -> bool:
        return (
            self._any_dir("backend", "frontend")
            or self._any_dir("services")
            or self._any_dir("apps", "packages")
        )

    # ── Quality checks ───────────────────────────────────────────────────────

    def _quality_checks(self, info: ProjectInfo) -> list[CheckConfig]:
        if info.has_makefile:
            targets = self.make_targets()
            return [
                _check(t, "make", [t], TARGET_TIMEOUTS.get(t, DEFAULT_TARGET_TIMEOUT))
                for t in COMMON_MAKE_TARGETS
                if t in targets
            ]
        if info.type == "go":
            return [
                _check("format", "gofmt", ["-l", "."], 30.0),
                _check("test", "go", ["test", "./..."], 120.0),
                _check("build", "go", ["build", "./..."], 180.0),
            ]
        if info.type == "node" and info.has_package_json:
            return [
                _check("lint", "npm", ["run", "lint"], 60.0),
                _check("test", "npm", ["test"], 120.0),
                _check("build", "npm", ["run", "build"], 180.0),
            ]
        if info.type == "python":
            return [
                _check("format", "black", ["--check", "."], 30.0),
                _check("lint", "flake8", ["."], 60.0),
                _check("test", "pytest", [], 120.0),
            ]
        return []

    def make_targets(self) -> set[str]:
        """Target names declared in the project's Makefile."""
        try:
            text = (self.path / "Makefile").read_text(encoding="utf-8", errors="replace")
        except OSError:
            return set()
        return {m.group(1) for m in _MAKE_TARGET.finditer(text)}

    # ── Services ─────────────────────────────────────────────────────────────

    def _looks_like_service_project(self) -> bool:
        return (self.path / "services").is_dir() or (self.path / "backend" / "services").is_dir()

    def _detect_services(self, reserved: set[str] | None = None) -> list[ServiceConfig]:
        services: list[ServiceConfig] = []
        backend_services = self.path / "backend" / "services"
        if backend_services.is_dir():
            services += _scan_services(backend_services, _backend_port)
        top_services = self.path / "services"
        if top_services.is_dir():
            services += _scan_services(top_services, lambda _name, offset: 8080 + offset)
        return _unique_names(services, reserved or set())

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _exists(self, name: str) -> bool:
        return (self.path / name).exists()

    def _any_dir(self, *names: str) -> bool:
        return any((self.path / n).is_dir() for n in names)


def _check(name: str, command: str, args: list[str], timeout: float) -> CheckConfig:
    return CheckConfig(
        name=name,
        command=command,
        args=args,
        timeout=timeout,
        exclusive=looks_like_exclusive_linter(command, args),
    )


def _backend_port(name: str, offset: int) -> int:
    return KNOWN_SERVICE_PORTS.get(name, 35000 + offset * 2)


def _scan_services(directory: Path, port_for) -> list[ServiceConfig]:
    services = []
    offset = 0
    for entry in sorted(directory.iterdir()):
        if not entry.is_dir():
            continue
        port = port_for(entry.name, offset)
        services.append(
            ServiceConfig(
                name=entry.name,
                type="rest",
                url=f"http://localhost:{port}",
                health="/healthz",
                timeout=5.0,
            )
        )
        offset += 1
    return services


def _unique_names(services: list[ServiceConfig], reserved: set[str]) -> list[ServiceConfig]:
    """Suffix names already taken by a service or check (``auth``, ``auth-2``)."""
    seen = set(reserved)
    for s in services:
        name, n = s.name, 2
        while name in seen:
            name = f"{s.name}-{n}"
            n += 1
        if name != s.name:
            logger.debug("Renamed duplicate service %s to %s", s.name, name)
            s.name = name
        seen.add(name)
    return services
