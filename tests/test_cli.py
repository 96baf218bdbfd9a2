"""Tests for the nvidia-provision command line."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from nvidia_provisioner.cli import app
from nvidia_provisioner.errors import HardwareNotDetectedError
from nvidia_provisioner.models import Flow

from conftest import ScriptedPresenter

runner = CliRunner()


@pytest.fixture
def cli_presenter():
    presenter = ScriptedPresenter()
    with patch("nvidia_provisioner.cli.create_presenter", return_value=presenter), \
            patch("nvidia_provisioner.cli.configure_log_file", return_value="/tmp/run.log"):
        yield presenter


@pytest.fixture
def run_flow():
    with patch("nvidia_provisioner.cli.run_flow", return_value=0) as mock_run:
        yield mock_run


def test_help_lists_commands():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("install-driver", "uninstall-driver", "install-toolkit", "install-docker", "check"):
        assert command in result.output


@pytest.mark.parametrize("argv,flow", [
    (["install-driver"], Flow.INSTALL_DRIVER),
    (["uninstall-driver"], Flow.UNINSTALL_DRIVER),
    (["install-toolkit"], Flow.INSTALL_TOOLKIT),
    (["install-docker"], Flow.INSTALL_DOCKER),
    (["check"], Flow.CHECK),
])
def test_commands_dispatch_flows(argv, flow, cli_presenter, run_flow):
    result = runner.invoke(app, argv)
    assert result.exit_code == 0
    config = run_flow.call_args[0][0]
    assert config.flow is flow


def test_toolkit_options(cli_presenter, run_flow):
    runner.invoke(app, ["install-toolkit", "--experimental", "--skip-gpu-check"])
    config = run_flow.call_args[0][0]
    assert config.experimental is True
    assert config.skip_gpu_check is True
    assert config.use_tui is False


def test_ui_option_reaches_presenter_factory(run_flow):
    with patch("nvidia_provisioner.cli.create_presenter",
               return_value=ScriptedPresenter()) as factory, \
            patch("nvidia_provisioner.cli.configure_log_file", return_value="/tmp/run.log"):
        runner.invoke(app, ["check", "--ui"])
    factory.assert_called_once_with(True)


def test_flow_exit_code_is_propagated(cli_presenter, run_flow):
    run_flow.return_value = 1
    assert runner.invoke(app, ["check"]).exit_code == 1


def test_provision_error_exits_one(cli_presenter, run_flow):
    run_flow.side_effect = HardwareNotDetectedError("No NVIDIA GPU detected.")

    result = runner.invoke(app, ["install-toolkit"])

    assert result.exit_code == 1
    assert cli_presenter.said("No NVIDIA GPU detected.", kind="error")
    assert "See log file: /tmp/run.log" in result.output


def test_unexpected_error_exits_one(cli_presenter, run_flow):
    run_flow.side_effect = RuntimeError("bug")
    result = runner.invoke(app, ["check"])
    assert result.exit_code == 1
    assert "Provisioning failed: bug" in result.output


def test_interrupt_exits_one(cli_presenter, run_flow):
    run_flow.side_effect = KeyboardInterrupt
    result = runner.invoke(app, ["check"])
    assert result.exit_code == 1
    assert "Cancelled." in result.output


def test_uninstall_has_no_gpu_option():
    result = runner.invoke(app, ["uninstall-driver", "--skip-gpu-check"])
    assert result.exit_code != 0


class TestUnwritableLogFile:
    @pytest.fixture
    def blocked_log(self, tmp_path):
        blocker = tmp_path / "not-a-directory"
        blocker.write_text("")
        path = str(blocker / "install-toolkit.log")
        with patch("nvidia_provisioner.config.default_log_file", return_value=path):
            yield path

    def test_flow_still_runs(self, blocked_log, run_flow):
        with patch("nvidia_provisioner.cli.create_presenter", return_value=ScriptedPresenter()):
            result = runner.invoke(app, ["install-toolkit"])

        assert result.exit_code == 0
        run_flow.assert_called_once()
        assert f"Cannot write log file {blocked_log}" in result.output
        assert "logging to the console only" in result.output

    def test_failure_does_not_point_to_missing_log(self, blocked_log, run_flow):
        run_flow.side_effect = HardwareNotDetectedError("No NVIDIA GPU detected.")
        with patch("nvidia_provisioner.cli.create_presenter", return_value=ScriptedPresenter()):
            result = runner.invoke(app, ["install-toolkit"])

        assert result.exit_code == 1
        assert "See log file" not in result.output
