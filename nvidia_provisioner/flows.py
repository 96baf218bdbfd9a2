"""End-to-end provisioning flows.

Every flow follows the same shape: guard the environment, detect the host,
plan the changes, execute them as ordered steps, verify, then offer a
reboot.  Each returns the process exit code; fatal problems are raised as
``ProvisionError`` and handled by the CLI.
"""

from .docker import setup as docker_setup
from .errors import HardwareNotDetectedError, UnsupportedOSError, VerificationError
from .executor import Executor, RunReport, Step
from .models import Flow
from .nvidia import drivers, toolkit
from .nvidia.planner import plan
from .nvidia.verify import (
    verify_container_gpu_access, verify_docker, verify_driver, verify_toolkit,
)
from .system.checks import check_driver_installed, run_system_check, validate
from .system.detect import build_host_profile
from .system.reboot import DRIVER_REBOOT_HINTS, UNINSTALL_REBOOT_HINTS, reboot_gate
from .utils.logging import get_log_path


def _show_log_path(presenter):
    log_path = get_log_path()
    if log_path:
        presenter.info(f"Log file: {log_path}")


def _finish(presenter, report: RunReport, title: str):
    presenter.report(title, report.summary_lines())
    if report.warnings:
        presenter.warning(f"Completed with {len(report.warnings)} warning(s); see the summary above.")
    _show_log_path(presenter)


def install_driver(config, presenter) -> int:
    presenter.step("Starting NVIDIA driver installation for Ubuntu...")
    has_sudo = validate(require_root=True, presenter=presenter)
    profile = build_host_profile(config, has_sudo)
    action_plan = plan(profile, config)
    presenter.info(f"Detected distribution: {profile.distribution_id}")
    presenter.info(f"Selected driver package: {action_plan.driver_package}")

    executor = Executor(presenter)
    executor.run(drivers.install_steps(action_plan) + [
        Step("Verify NVIDIA driver", verify_driver, error=VerificationError),
    ])

    _finish(presenter, executor.report, "Installation Summary")
    presenter.success("NVIDIA driver installation completed!")
    presenter.info("It is highly recommended to reboot so the new driver is properly loaded.")
    return reboot_gate(presenter, hints=DRIVER_REBOOT_HINTS)


def uninstall_driver(config, presenter) -> int:
    presenter.step("NVIDIA Driver Complete Uninstall")
    has_sudo = validate(require_root=True, presenter=presenter)
    profile = build_host_profile(config, has_sudo, detect_hardware_tools=False)

    if profile.session_mode.is_graphical:
        presenter.info("Detected graphical environment.")
        presenter.report("Switch to text mode for safe removal", drivers.text_mode_instructions())
        _show_log_path(presenter)
        return 0

    presenter.info(f"Running in {profile.session_mode.value} mode. Proceeding with NVIDIA removal...")
    presenter.warning("This will completely remove all NVIDIA drivers and related packages!")
    if not presenter.confirm("Continue with NVIDIA driver removal?", title="Confirm Removal"):
        presenter.info("Operation cancelled by user")
        return 0

    executor = Executor(presenter)
    executor.run(drivers.uninstall_steps())

    _finish(presenter, executor.report, "Removal Summary")
    presenter.success("NVIDIA driver removal completed!")
    presenter.info("Blacklist has been disabled for future installations.")
    presenter.info("The system needs to be rebooted to complete the process.")
    return reboot_gate(presenter, hints=UNINSTALL_REBOOT_HINTS, prompt="Do you want to reboot now?")


def install_toolkit(config, presenter) -> int:
    presenter.step("NVIDIA Container Toolkit Installation")
    config = config.with_overrides(presenter)
    has_sudo = validate(require_root=False, presenter=presenter)
    profile = build_host_profile(config, has_sudo)

    if not profile.gpu_present:
        if not presenter.confirm("No NVIDIA GPU detected. Do you want to continue anyway?",
                                 title="No GPU Detected"):
            raise HardwareNotDetectedError("No NVIDIA GPU detected.")
    else:
        presenter.success("NVIDIA GPU detected")
    check_driver_installed()

    action_plan = plan(profile, config)
    executor = Executor(presenter)
    executor.run(toolkit.install_steps(action_plan) + [
        Step("Verify NVIDIA Container Toolkit", verify_toolkit,
             fatal=True, error=VerificationError),
        Step("Test GPU access in Docker", verify_container_gpu_access,
             error=VerificationError, description="Running nvidia-smi in a CUDA container..."),
    ])

    _finish(presenter, executor.report, "Installation Verification")
    presenter.success("NVIDIA Container Toolkit installation completed!")
    return reboot_gate(presenter)


def install_docker(config, presenter) -> int:
    presenter.step("Docker Engine Installation")
    has_sudo = validate(require_root=False, presenter=presenter)
    profile = build_host_profile(config, has_sudo, detect_hardware_tools=False)
    if not profile.codename:
        raise UnsupportedOSError("Could not determine the Ubuntu codename from /etc/os-release")

    action_plan = plan(profile, config)
    executor = Executor(presenter)
    executor.run(docker_setup.install_steps(action_plan) + [
        Step("Verify Docker installation", verify_docker, error=VerificationError),
    ])

    _finish(presenter, executor.report, "Docker Installation")
    presenter.success("Docker installation completed successfully!")
    presenter.info(f"To use Docker without sudo, add your user to the docker group: "
                   f"{docker_setup.DOCKER_GROUP_HINT}")
    return reboot_gate(presenter)


def system_check(config, presenter) -> int:
    passed = run_system_check(config, presenter)
    _show_log_path(presenter)
    return 0 if passed else 1


FLOWS = {
    Flow.INSTALL_DRIVER: install_driver,
    Flow.UNINSTALL_DRIVER: uninstall_driver,
    Flow.INSTALL_TOOLKIT: install_toolkit,
    Flow.INSTALL_DOCKER: install_docker,
    Flow.CHECK: system_check,
}


def run_flow(config, presenter) -> int:
    return FLOWS[config.flow](config, presenter)
