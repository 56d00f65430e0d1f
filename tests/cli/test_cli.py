"""Tests for the sluice CLI."""

import json
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from sluice import bootstrap
from sluice.cli import app
from sluice.core.logging import reset_logging

# Stderr is combined into result.output by CliRunner.invoke()
runner = CliRunner()


def _settings(tmp_path: Path, backend: str = "direct", extra: str = "") -> Path:
    if backend == "direct":
        backend_yaml = """
backend:
  kind: direct
  deployer:
    url: "http://deployer.test"
"""
    else:
        backend_yaml = """
backend:
  kind: release_managed
  release_manager:
    url: "http://skipper.test/api"
"""
    config_file = tmp_path / "settings.yaml"
    config_file.write_text(
        backend_yaml
        + f"""
store:
  url: "sqlite:///{tmp_path / 'deployments.db'}"
logging:
  level: ERROR
apps:
  http:
    uri: "docker:sluice/http:1.0"
  transform:
    uri: "docker:sluice/transform:1.0"
  jdbc:
    uri: "docker:sluice/jdbc:1.0"
streams:
  orders:
    components:
      - label: ingest
        app: http
      - label: enrich
        app: transform
      - label: persist
        app: jdbc
"""
        + extra
    )
    return config_file


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    reset_logging()


@pytest.fixture
def fakes(monkeypatch, instance_deployer, release_manager):
    """Route every CLI command through in-process collaborators."""
    real_build_runtime = bootstrap.build_runtime

    def build(settings, **kwargs):
        return real_build_runtime(
            settings, instance_deployer=instance_deployer, release_manager=release_manager
        )

    monkeypatch.setattr(bootstrap, "build_runtime", build)
    return instance_deployer, release_manager


class TestCLIBasics:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert "sluice version" in result.output

    def test_help_lists_commands(self) -> None:
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("validate", "deploy", "undeploy", "status", "update", "rollback"):
            assert command in result.output


class TestValidate:
    def test_valid_settings(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["validate", "-s", str(_settings(tmp_path))])

        assert result.exit_code == 0
        assert "Configuration valid." in result.output
        assert "Streams: orders" in result.output
        assert "Resolved configuration:" not in result.output

    def test_verbose_prints_resolved_config(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["validate", "-v", "-s", str(_settings(tmp_path))])

        assert result.exit_code == 0, result.output
        _, resolved = result.stdout.split("Resolved configuration:\n", 1)
        data = yaml.safe_load(resolved)
        assert data["backend"]["kind"] == "direct"
        assert [c["label"] for c in data["streams"]["orders"]["components"]] == [
            "ingest",
            "enrich",
            "persist",
        ]

    def test_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["validate", "-s", str(tmp_path / "nope.yaml")])

        assert result.exit_code == 1
        assert "Settings file not found" in result.output

    def test_schema_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("backend:\n  kind: direct\n")

        result = runner.invoke(app, ["validate", "-s", str(config_file)])

        assert result.exit_code == 1
        assert "Configuration errors:" in result.output

    def test_unregistered_app(self, tmp_path: Path) -> None:
        extra = """
  clicks:
    components:
      - label: ingest
        app: http
      - label: store
        app: s3
"""
        result = runner.invoke(app, ["validate", "-s", str(_settings(tmp_path, extra=extra))])

        assert result.exit_code == 1
        assert "unregistered app(s): s3" in result.output


class TestDirectCommands:
    def test_deploy_status_undeploy(self, tmp_path: Path, fakes) -> None:
        instance_deployer, _ = fakes
        settings = str(_settings(tmp_path))

        deployed = runner.invoke(
            app, ["deploy", "orders", "-p", "app.enrich.threads=4", "-s", settings]
        )
        assert deployed.exit_code == 0, deployed.output
        assert "Stream 'orders' deployed." in deployed.output
        assert instance_deployer.requests["enrich"].properties["threads"] == "4"

        status = runner.invoke(app, ["status", "orders", "--json", "-s", settings])
        assert status.exit_code == 0, status.output
        data = json.loads(status.stdout)
        assert data["state"] == "deployed"
        assert [c["label"] for c in data["components"]] == ["ingest", "enrich", "persist"]

        undeployed = runner.invoke(app, ["undeploy", "orders", "-s", settings])
        assert undeployed.exit_code == 0, undeployed.output
        assert instance_deployer.order("undeploy") == ["ingest", "enrich", "persist"]

    def test_partial_failure_lists_components(self, tmp_path: Path, fakes) -> None:
        instance_deployer, _ = fakes
        instance_deployer.fail_deploy.add("enrich")

        result = runner.invoke(app, ["deploy", "orders", "-s", str(_settings(tmp_path))])

        assert result.exit_code == 1
        assert "  - enrich:" in result.output

    def test_status_table(self, tmp_path: Path, fakes) -> None:
        result = runner.invoke(app, ["status", "orders", "-s", str(_settings(tmp_path))])

        assert result.exit_code == 0
        assert "orders: undeployed" in result.output

    def test_unknown_stream(self, tmp_path: Path, fakes) -> None:
        result = runner.invoke(app, ["deploy", "clicks", "-s", str(_settings(tmp_path))])

        assert result.exit_code == 1
        assert "Stream 'clicks' not found" in result.output

    def test_bad_property(self, tmp_path: Path, fakes) -> None:
        result = runner.invoke(
            app, ["deploy", "orders", "-p", "threads", "-s", str(_settings(tmp_path))]
        )

        assert result.exit_code != 0

    def test_update_rejected(self, tmp_path: Path, fakes) -> None:
        result = runner.invoke(
            app,
            [
                "update",
                "orders",
                "--package-name",
                "orders",
                "--package-version",
                "2.0.0",
                "-s",
                str(_settings(tmp_path)),
            ],
        )

        assert result.exit_code == 1
        assert "release-managed" in result.output


class TestReleaseManagedCommands:
    def test_deploy_update_rollback(self, tmp_path: Path, fakes) -> None:
        _, release_manager = fakes
        settings = str(_settings(tmp_path, backend="release_managed"))
        overrides = tmp_path / "overrides.yaml"
        overrides.write_text("apps:\n  enrich:\n    properties:\n      threads: '8'\n")

        deployed = runner.invoke(app, ["deploy", "orders", "-s", settings])
        assert deployed.exit_code == 0, deployed.output

        updated = runner.invoke(
            app,
            [
                "update",
                "orders",
                "--package-name",
                "orders",
                "--package-version",
                "2.0.0",
                "--yaml-file",
                str(overrides),
                "-s",
                settings,
            ],
        )
        assert updated.exit_code == 0, updated.output
        assert release_manager.descriptors[-1].yaml_overrides == overrides.read_text()

        rolled_back = runner.invoke(app, ["rollback", "orders", "-s", settings])
        assert rolled_back.exit_code == 0, rolled_back.output
        assert len(release_manager.history["orders"]) == 3

    def test_release_manager_error(self, tmp_path: Path, fakes) -> None:
        _, release_manager = fakes
        release_manager.fail_with = "repository 'local' is read-only"

        result = runner.invoke(
            app, ["deploy", "orders", "-s", str(_settings(tmp_path, backend="release_managed"))]
        )

        assert result.exit_code == 1
        assert "repository 'local' is read-only" in result.output
