"""Tests for FaxService, shortcuts and the CLI."""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from conftest import FakeConnector, FakeConnectors, FakeTunnels
from mysql_fax.cli import app
from mysql_fax.config import ConfigRegistry, Settings
from mysql_fax.core.operations import FaxService, shortcuts
from mysql_fax.core.planner import SyncPlanner
from mysql_fax.core.runner import PipelineResult
from mysql_fax.errors import InvalidEnvironmentError, UnknownShortcutError


class RecordingRunner:
    def __init__(self) -> None:
        self.calls: list = []

    def __call__(self, pipeline, timeout):
        self.calls.append((pipeline, timeout))
        return PipelineResult(description=pipeline.description, returncodes=[0, 0, 0])


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


class TestShortcuts:
    """Tests for the shortcut table."""

    def test_every_pair(self, registry: ConfigRegistry) -> None:
        table = shortcuts(registry)
        assert table == {
            "copy_from_production_to_default": ("production", "default"),
            "copy_from_production_to_development": ("production", "development"),
            "copy_from_production_to_test": ("production", "test"),
        }

    def test_no_sources(self) -> None:
        registry = ConfigRegistry.from_mapping({"dev": {"database": "d"}})
        assert shortcuts(registry) == {}


class TestFaxService:
    """Tests for FaxService."""

    def test_copy_runs_whole_copy(
        self, settings: Settings, registry: ConfigRegistry, runner: RecordingRunner
    ) -> None:
        settings.dump.command_timeout_seconds = 600
        service = FaxService(settings, registry, runner=runner)

        result = service.copy("production", "development")

        assert len(runner.calls) == 1
        pipeline, timeout = runner.calls[0]
        assert pipeline.stage_names == ["ssh", "gzip", "mysql"]
        assert timeout == 600
        assert result.results[0].returncodes == [0, 0, 0]
        assert result.dry_run is False

    def test_dry_run_runs_nothing(
        self, settings: Settings, registry: ConfigRegistry, runner: RecordingRunner
    ) -> None:
        settings.dry_run = True
        service = FaxService(settings, registry, runner=runner)

        result = service.copy_table("production", "test", "orders")

        assert runner.calls == []
        assert len(result.rendered()) == 1
        assert "orders" in result.rendered()[0]
        assert "devpass" not in result.rendered()[0]

    def test_roles_are_enforced(
        self, settings: Settings, registry: ConfigRegistry, runner: RecordingRunner
    ) -> None:
        """Test a destination cannot be used as a source."""
        service = FaxService(settings, registry, runner=runner)
        with pytest.raises(InvalidEnvironmentError):
            service.copy("development", "test")
        assert runner.calls == []

    def test_incremental_copy(
        self,
        settings: Settings,
        registry: ConfigRegistry,
        tunnels: FakeTunnels,
        runner: RecordingRunner,
    ) -> None:
        connectors = FakeConnectors({
            "production": FakeConnector(max_ids={"orders": 15, "logs": 5}),
            "development": FakeConnector(max_ids={"orders": 10, "logs": None}),
        })
        planner = SyncPlanner(settings, registry, tunnel_factory=tunnels, connector_factory=connectors)
        service = FaxService(settings, registry, planner=planner, runner=runner)

        result = service.incremental_copy("production", "development")

        assert len(runner.calls) == 1
        assert "id > 10" in runner.calls[0][0].render()
        assert result.skipped == ["logs"]

    def test_sync(
        self,
        settings: Settings,
        registry: ConfigRegistry,
        tunnels: FakeTunnels,
        runner: RecordingRunner,
    ) -> None:
        connectors = FakeConnectors({
            "production": FakeConnector(
                columns={"events": ["id", "created_at"], "tags": ["id"]},
                max_ids={"events": 5000, "tags": 20},
            ),
        })
        planner = SyncPlanner(settings, registry, tunnel_factory=tunnels, connector_factory=connectors)
        service = FaxService(settings, registry, planner=planner, runner=runner)

        result = service.sync("production", "development", "2024-06-01", 1000)

        assert len(result.commands) == 2
        assert len(runner.calls) == 2

    def test_run_shortcut(
        self, settings: Settings, registry: ConfigRegistry, runner: RecordingRunner
    ) -> None:
        service = FaxService(settings, registry, runner=runner)

        result = service.run_shortcut("copy_from_production_to_development")
        assert (result.source, result.destination) == ("production", "development")

        with pytest.raises(UnknownShortcutError):
            service.run_shortcut("copy_from_nowhere_to_development")


class TestCLI:
    """Tests for the Typer application."""

    def test_version(self) -> None:
        result = CliRunner().invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "mysql-fax" in result.output

    def test_environments(self, database_yml: Path) -> None:
        result = CliRunner().invoke(app, ["environments", "--config", str(database_yml)])
        assert result.exit_code == 0
        assert "production" in result.output
        assert "source" in result.output

    def test_shortcuts(self, database_yml: Path) -> None:
        result = CliRunner().invoke(app, ["shortcuts", "-c", str(database_yml)])
        assert result.exit_code == 0
        assert "copy_from_production_to_development" in result.output

    def test_copy_dry_run(self, database_yml: Path) -> None:
        result = CliRunner().invoke(
            app, ["copy", "production", "development", "-c", str(database_yml), "--dry-run"]
        )
        assert result.exit_code == 0
        assert "mysqldump" in result.output
        assert "devpass" not in result.output

    def test_unknown_environment_exits_nonzero(self, database_yml: Path) -> None:
        result = CliRunner().invoke(
            app, ["copy", "staging", "development", "-c", str(database_yml), "-n"]
        )
        assert result.exit_code == 1
        assert "staging" in result.output

    def test_missing_config(self, tmp_path: Path) -> None:
        result = CliRunner().invoke(app, ["environments", "-c", str(tmp_path / "none.yml")])
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_malformed_settings_file(self, database_yml: Path, tmp_path: Path) -> None:
        settings_file = tmp_path / "fax.yml"
        settings_file.write_text("ssh: [unclosed\n  - x: :")
        result = CliRunner().invoke(
            app, ["environments", "-c", str(database_yml), "-s", str(settings_file)]
        )
        assert result.exit_code == 1
        assert "Error" in result.output
