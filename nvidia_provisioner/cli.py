"""NVIDIA Provisioner - Command Line Interface

Entry point for the nvidia-provision CLI command and python3 -m nvidia_provisioner.
"""

import traceback

import typer

from nvidia_provisioner.config import RunConfig
from nvidia_provisioner.errors import ProvisionError
from nvidia_provisioner.flows import run_flow
from nvidia_provisioner.models import Flow
from nvidia_provisioner.utils.logging import configure_log_file, log_error, log_info, log_warn
from nvidia_provisioner.utils.presenter import create_presenter

app = typer.Typer(
    name="nvidia-provision",
    help="Install and remove NVIDIA drivers, the NVIDIA Container Toolkit and Docker on Ubuntu.",
    no_args_is_help=True,
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)

SKIP_GPU_CHECK = typer.Option(False, "--skip-gpu-check", help="Skip the NVIDIA GPU check")
USE_TUI = typer.Option(False, "--ui", help="Use interactive dialogs instead of plain output")


def _point_to_log(log_path):
    if log_path:
        log_info(f"See log file: {log_path}")


def _execute(config: RunConfig) -> None:
    """Run one flow with the top-level error handling and exit with its code."""
    try:
        log_path = configure_log_file(config.log_file)
    except OSError as e:
        log_warn(f"Cannot write log file {config.log_file} ({e.strerror}); logging to the console only")
        log_path = None
    presenter = create_presenter(config.use_tui)

    try:
        exit_code = run_flow(config, presenter)
    except ProvisionError as e:
        presenter.error(str(e))
        _point_to_log(log_path)
        raise typer.Exit(e.exit_code)
    except KeyboardInterrupt:
        print()
        log_info("Cancelled.")
        raise typer.Exit(1)
    except Exception as e:
        log_error(f"Provisioning failed: {str(e)}")
        log_error(f"Traceback: {traceback.format_exc()}")
        _point_to_log(log_path)
        raise typer.Exit(1)

    raise typer.Exit(exit_code)


@app.command("install-driver")
def install_driver(skip_gpu_check: bool = SKIP_GPU_CHECK, ui: bool = USE_TUI) -> None:
    """Install the NVIDIA 535 driver (run as root)."""
    _execute(RunConfig.from_options(Flow.INSTALL_DRIVER, skip_gpu_check=skip_gpu_check, use_tui=ui))


@app.command("uninstall-driver")
def uninstall_driver(ui: bool = USE_TUI) -> None:
    """Completely remove NVIDIA drivers (run as root, from a text console)."""
    _execute(RunConfig.from_options(Flow.UNINSTALL_DRIVER, use_tui=ui))


@app.command("install-toolkit")
def install_toolkit(
    skip_gpu_check: bool = SKIP_GPU_CHECK,
    ui: bool = USE_TUI,
    experimental: bool = typer.Option(
        False, "--experimental", help="Enable the experimental toolkit package repository"
    ),
) -> None:
    """Install the NVIDIA Container Toolkit (run as a regular user with sudo)."""
    _execute(RunConfig.from_options(Flow.INSTALL_TOOLKIT, skip_gpu_check=skip_gpu_check,
                                    use_tui=ui, experimental=experimental))


@app.command("install-docker")
def install_docker(ui: bool = USE_TUI) -> None:
    """Install Docker Engine from Docker's repository (run as a regular user with sudo)."""
    _execute(RunConfig.from_options(Flow.INSTALL_DOCKER, use_tui=ui))


@app.command("check")
def check(skip_gpu_check: bool = SKIP_GPU_CHECK, ui: bool = USE_TUI) -> None:
    """Check the system without changing anything."""
    _execute(RunConfig.from_options(Flow.CHECK, skip_gpu_check=skip_gpu_check, use_tui=ui))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
