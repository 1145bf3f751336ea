"""Tests for CLI commands - run, watch, show-config."""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from csynctrigger.cli import cli
from csynctrigger.core.errors import ConfigError, SyncServerError


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def config_dir(tmp_path: Path) -> Iterator[Path]:
    """Point the settings directory at a temporary directory."""
    config = tmp_path / ".csynctrigger"
    with (
        patch("csynctrigger.cli.config.get_config_dir", return_value=config),
        patch("csynctrigger.cli.run.setup_logging"),
        patch("csynctrigger.cli.watch.setup_logging"),
    ):
        yield config


@pytest.fixture
def csync_config(tmp_path: Path) -> Path:
    """Write a csync2 config with two peers besides this node."""
    data = tmp_path / "data"
    data.mkdir()
    cfg = tmp_path / "csync2.cfg"
    cfg.write_text(
        "group cluster\n"
        "{\n"
        "  host node1 node2;\n"
        "  host node3;\n"
        f"  include {data};\n"
        f"  exclude {data}/tmp;\n"
        "}\n"
    )
    return cfg


@pytest.fixture
def empty_config(tmp_path: Path) -> Path:
    """Write a csync2 config without include locations."""
    cfg = tmp_path / "empty.cfg"
    cfg.write_text("host node1 node2;\n")
    return cfg


class TestShowConfigCommand:
    """Tests for 'csynctrigger show-config' command."""

    def test_shows_peers_and_locations(self, runner: CliRunner, csync_config: Path) -> None:
        """Peers exclude this node; includes and excludes are listed."""
        result = runner.invoke(
            cli, ["show-config", "--csync-config", str(csync_config), "-N", "node1"]
        )

        assert result.exit_code == 0, result.output
        assert "Peers:    node2 node3" in result.output
        assert "Includes:" in result.output
        assert "Options: -N node1" in result.output
        assert "check_interval       = 0.5s" in result.output

    def test_no_includes_fails(self, runner: CliRunner, empty_config: Path) -> None:
        """A config without include locations is an error."""
        result = runner.invoke(cli, ["show-config", "--csync-config", str(empty_config)])

        assert result.exit_code == 1
        assert "No include locations found" in result.output

    def test_missing_csync_config(self, runner: CliRunner, tmp_path: Path) -> None:
        """An unreadable csync2 config is an error."""
        result = runner.invoke(cli, ["show-config", "--csync-config", str(tmp_path / "nope.cfg")])

        assert result.exit_code == 1
        assert "Cannot read csync2 config" in result.output

    def test_settings_file_and_precedence(
        self, runner: CliRunner, csync_config: Path, config_dir: Path
    ) -> None:
        """The settings file overrides defaults, options override the file."""
        config_dir.mkdir()
        (config_dir / "settings.json").write_text(
            json.dumps({"check_interval": 2, "batch_size_threshold": 50})
        )

        result = runner.invoke(
            cli,
            ["show-config", "--csync-config", str(csync_config), "--check-interval", "3"],
        )

        assert result.exit_code == 0, result.output
        assert "check_interval       = 3.0s" in result.output
        assert "batch_size_threshold = 50" in result.output

    def test_environment_variable(self, runner: CliRunner, csync_config: Path) -> None:
        """CSYNCTRIGGER_* variables set options."""
        result = runner.invoke(
            cli,
            ["show-config", "--csync-config", str(csync_config)],
            env={"CSYNCTRIGGER_BATCH_SIZE_THRESHOLD": "7"},
        )

        assert result.exit_code == 0, result.output
        assert "batch_size_threshold = 7" in result.output

    def test_invalid_settings_file(
        self, runner: CliRunner, csync_config: Path, tmp_path: Path
    ) -> None:
        """Unknown settings keys are rejected."""
        settings = tmp_path / "custom.json"
        settings.write_text(json.dumps({"check_intervall": 1}))

        result = runner.invoke(
            cli,
            ["show-config", "--settings", str(settings), "--csync-config", str(csync_config)],
        )

        assert result.exit_code == 1
        assert "Unknown settings" in result.output

    def test_invalid_threshold(self, runner: CliRunner, csync_config: Path) -> None:
        """Out of range thresholds are rejected."""
        result = runner.invoke(
            cli,
            ["show-config", "--csync-config", str(csync_config), "--check-interval", "0"],
        )

        assert result.exit_code == 1
        assert "check_interval must be positive" in result.output


class TestRunCommand:
    """Tests for 'csynctrigger run' command."""

    @pytest.fixture
    def mocks(self) -> Iterator[dict[str, MagicMock]]:
        """Replace the server, watcher and coordinator."""
        with (
            patch("csynctrigger.cli.run.CsyncServer") as server,
            patch("csynctrigger.cli.run.FileWatcher") as watcher,
            patch("csynctrigger.cli.run.SyncCoordinator") as coordinator,
        ):
            yield {"server": server, "watcher": watcher, "coordinator": coordinator}

    def test_starts_everything(
        self, runner: CliRunner, csync_config: Path, mocks: dict[str, MagicMock]
    ) -> None:
        """Server and watcher are started before the initial full sync and loop."""
        result = runner.invoke(
            cli,
            ["run", "--csync-config", str(csync_config), "-N", "node1", "-D", "/db", "-v"],
        )

        assert result.exit_code == 0, result.output
        server_args = mocks["server"].call_args
        assert server_args.args[0] == ["-N", "node1", "-D", "/db"]
        mocks["server"].return_value.__enter__.assert_called_once()
        mocks["watcher"].return_value.__enter__.assert_called_once()

        coordinator = mocks["coordinator"].return_value
        coordinator.start_up.assert_called_once()
        coordinator.run.assert_called_once()
        assert "Watching for changes..." in result.output

    def test_passthrough_options_reach_engine(
        self, runner: CliRunner, csync_config: Path, mocks: dict[str, MagicMock]
    ) -> None:
        """All csync2 arguments are forwarded to client commands."""
        with patch("csynctrigger.cli.run.CsyncEngine") as engine:
            result = runner.invoke(
                cli, ["run", "--csync-config", str(csync_config), "-N", "node1", "-v"]
            )

        assert result.exit_code == 0, result.output
        assert engine.call_args.args[0] == ("-N", "node1", "-v")

    def test_no_includes_fails(
        self, runner: CliRunner, empty_config: Path, mocks: dict[str, MagicMock]
    ) -> None:
        """Nothing is started without include locations."""
        result = runner.invoke(cli, ["run", "--csync-config", str(empty_config)])

        assert result.exit_code == 1
        assert "No include locations found" in result.output
        mocks["server"].assert_not_called()

    def test_server_failure(
        self, runner: CliRunner, csync_config: Path, mocks: dict[str, MagicMock]
    ) -> None:
        """A server that does not start exits with status 1."""
        mocks["server"].return_value.__enter__.side_effect = SyncServerError(
            "Failed to start csync server (exited with status 1)"
        )

        result = runner.invoke(cli, ["run", "--csync-config", str(csync_config)])

        assert result.exit_code == 1
        assert "Failed to start csync server" in result.output
        mocks["coordinator"].return_value.run.assert_not_called()

    def test_watcher_failure_stops_server(
        self, runner: CliRunner, csync_config: Path, mocks: dict[str, MagicMock]
    ) -> None:
        """An error after the server started still stops the server."""
        mocks["watcher"].return_value.__enter__.side_effect = ConfigError(
            "None of the include locations can be watched"
        )

        result = runner.invoke(cli, ["run", "--csync-config", str(csync_config)])

        assert result.exit_code == 1
        assert "None of the include locations can be watched" in result.output
        mocks["server"].return_value.__exit__.assert_called_once()
        mocks["coordinator"].return_value.start_up.assert_not_called()

    def test_interrupt_stops_cleanly(
        self, runner: CliRunner, csync_config: Path, mocks: dict[str, MagicMock]
    ) -> None:
        """Ctrl+C leaves the loop and releases the server and watcher."""
        mocks["coordinator"].return_value.run.side_effect = KeyboardInterrupt

        result = runner.invoke(cli, ["run", "--csync-config", str(csync_config)])

        assert result.exit_code == 0, result.output
        assert "Stopping..." in result.output
        mocks["server"].return_value.__exit__.assert_called_once()
        mocks["watcher"].return_value.__exit__.assert_called_once()


class TestWatchCommand:
    """Tests for 'csynctrigger watch' command."""

    def test_prints_paths(self, runner: CliRunner, csync_config: Path) -> None:
        """Accepted paths are printed, excluded ones only on request."""
        with patch("csynctrigger.cli.watch.FileWatcher") as watcher:

            def enter(*args: Any) -> None:
                on_path = watcher.call_args.kwargs["on_path"]
                on_path("/data/a.txt", True)
                on_path("/data/tmp/x", False)
                raise KeyboardInterrupt

            watcher.return_value.__enter__.side_effect = enter
            result = runner.invoke(
                cli, ["watch", "--csync-config", str(csync_config), "--show-excluded"]
            )

        assert result.exit_code == 0, result.output
        assert "/data/a.txt\n" in result.output
        assert "EXCLUDED: /data/tmp/x" in result.output
        assert watcher.call_args.args[1] is None

    def test_hides_excluded_by_default(self, runner: CliRunner, csync_config: Path) -> None:
        """Excluded paths are not printed without --show-excluded."""
        with patch("csynctrigger.cli.watch.FileWatcher") as watcher:

            def enter(*args: Any) -> None:
                watcher.call_args.kwargs["on_path"]("/data/tmp/x", False)
                raise KeyboardInterrupt

            watcher.return_value.__enter__.side_effect = enter
            result = runner.invoke(cli, ["watch", "--csync-config", str(csync_config)])

        assert result.exit_code == 0, result.output
        assert "EXCLUDED" not in result.output

    def test_append_uses_queue(
        self, runner: CliRunner, csync_config: Path, tmp_path: Path
    ) -> None:
        """With --append the watcher writes to the queue file."""
        queue_file = tmp_path / "q.log"
        with patch("csynctrigger.cli.watch.FileWatcher") as watcher:
            watcher.return_value.__enter__.side_effect = KeyboardInterrupt
            result = runner.invoke(
                cli,
                [
                    "watch",
                    "--csync-config",
                    str(csync_config),
                    "--queue-file",
                    str(queue_file),
                    "--append",
                ],
            )

        assert result.exit_code == 0, result.output
        assert watcher.call_args.args[1].path == queue_file

    def test_no_includes_fails(self, runner: CliRunner, empty_config: Path) -> None:
        """A config without include locations is an error."""
        result = runner.invoke(cli, ["watch", "--csync-config", str(empty_config)])

        assert result.exit_code == 1
        assert "No include locations found" in result.output
