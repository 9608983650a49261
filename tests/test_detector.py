"""Tests for project auto-detection."""

from __future__ import annotations

from pathlib import Path

from watch_now.projects.detector import ProjectDetector

MAKEFILE = """\
.PHONY: lint test
VERSION := 1.0

fmt:
\tgofmt -w .

lint: fmt
\tgolangci-lint run

test:
\tgo test ./...

release:
\t./release.sh
"""


class TestProjectType:
    def test_unknown_empty_dir(self, tmp_path: Path) -> None:
        info = ProjectDetector(tmp_path).detect()
        assert info.type == "unknown"
        assert info.services == []
        assert info.quality_checks == []

    def test_go(self, tmp_path: Path) -> None:
        (tmp_path / "go.mod").write_text("module example.com/x\n")
        info = ProjectDetector(tmp_path).detect()
        assert info.type == "go"
        assert info.has_go_mod
        assert [c.name for c in info.quality_checks] == ["format", "test", "build"]

    def test_node(self, tmp_path: Path) -> None:
        (tmp_path / "package.json").write_text("{}")
        info = ProjectDetector(tmp_path).detect()
        assert info.type == "node"
        lint = info.quality_checks[0]
        assert (lint.command, lint.args) == ("npm", ["run", "lint"])
        assert lint.exclusive is True

    def test_python(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text("[project]\n")
        assert ProjectDetector(tmp_path).detect().type == "python"

    def test_monorepo(self, tmp_path: Path) -> None:
        (tmp_path / "backend").mkdir()
        (tmp_path / "go.mod").write_text("module x\n")
        assert ProjectDetector(tmp_path).detect().type == "monorepo"


class TestMakeTargets:
    def test_parses_targets_not_variables(self, tmp_path: Path) -> None:
        (tmp_path / "Makefile").write_text(MAKEFILE)
        targets = ProjectDetector(tmp_path).make_targets()
        assert {"fmt", "lint", "test", "release"} <= targets
        assert "VERSION" not in targets

    def test_makefile_wins_over_language_presets(self, tmp_path: Path) -> None:
        (tmp_path / "Makefile").write_text(MAKEFILE)
        (tmp_path / "go.mod").write_text("module x\n")
        checks = ProjectDetector(tmp_path).detect().quality_checks

        # Only well-known targets, in canonical order
        assert [c.name for c in checks] == ["fmt", "lint", "test"]
        lint = checks[1]
        assert (lint.command, lint.args, lint.timeout) == ("make", ["lint"], 60.0)
        assert lint.exclusive is True
        assert checks[2].timeout == 120.0
        assert checks[2].exclusive is False

    def test_no_makefile(self, tmp_path: Path) -> None:
        assert ProjectDetector(tmp_path).make_targets() == set()


class TestServices:
    def test_backend_services_ports(self, tmp_path: Path) -> None:
        for name in ("iam", "analytics", "zeta"):
            (tmp_path / "backend" / "services" / name).mkdir(parents=True)
        (tmp_path / "backend" / "services" / "README.md").write_text("docs")

        services = ProjectDetector(tmp_path).detect().services
        by_name = {s.name: s for s in services}

        assert set(by_name) == {"iam", "analytics", "zeta"}
        assert by_name["iam"].url == "http://localhost:35050"
        assert by_name["analytics"].url == "http://localhost:35054"
        # Unknown names fall back to an offset in sorted order (analytics, iam, zeta)
        assert by_name["zeta"].url == "http://localhost:35004"
        assert all(s.health == "/healthz" and s.timeout == 5.0 for s in services)

    def test_top_level_services(self, tmp_path: Path) -> None:
        for name in ("billing", "users"):
            (tmp_path / "services" / name).mkdir(parents=True)
        services = ProjectDetector(tmp_path).detect().services
        assert [(s.name, s.url) for s in services] == [
            ("billing", "http://localhost:8080"),
            ("users", "http://localhost:8081"),
        ]


class TestGenerateConfig:
    def test_generated_defaults(self, tmp_path: Path) -> None:
        (tmp_path / "go.mod").write_text("module x\n")
        config = ProjectDetector(tmp_path).generate_config()
        assert config.interval == 30.0
        assert config.api.enabled is True
        assert config.api.port == 0
        assert len(config.checks) == 3


class TestUniqueNames:
    def test_same_dir_in_both_layouts(self, tmp_path: Path) -> None:
        (tmp_path / "backend" / "services" / "auth").mkdir(parents=True)
        (tmp_path / "services" / "auth").mkdir(parents=True)

        services = ProjectDetector(tmp_path).detect().services
        assert [(s.name, s.url) for s in services] == [
            ("auth", "http://localhost:35000"),
            ("auth-2", "http://localhost:8080"),
        ]

    def test_service_named_like_a_check(self, tmp_path: Path) -> None:
        (tmp_path / "Makefile").write_text(MAKEFILE)
        (tmp_path / "services" / "lint").mkdir(parents=True)

        info = ProjectDetector(tmp_path).detect()
        names = [c.name for c in info.quality_checks] + [s.name for s in info.services]
        assert len(names) == len(set(names))
        assert [s.name for s in info.services] == ["lint-2"]
