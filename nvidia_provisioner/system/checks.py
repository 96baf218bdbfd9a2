"""System checks and validation"""

import os

from ..errors import (
    DriverMissingError, PrivilegeDeniedError, UnsupportedOSError,
)
from ..utils.logging import log_info, log_step
from ..utils.system import command_exists, has_cached_sudo, read_os_release, refresh_sudo
from .detect import detect_gpu

DRIVER_INSTALL_HINT = "sudo apt update && sudo apt install -y nvidia-driver-535"


def is_ubuntu(os_release: str) -> bool:
    return "Ubuntu" in os_release


def _check_ubuntu():
    if not is_ubuntu(read_os_release()):
        raise UnsupportedOSError("This tool only supports Ubuntu systems.")
    log_info("✓ Ubuntu detected")


def _check_user(require_root: bool):
    is_root = os.geteuid() == 0
    if require_root and not is_root:
        raise PrivilegeDeniedError("This command must be run as root (use sudo).")
    if not require_root and is_root:
        raise PrivilegeDeniedError(
            "Do not run this command as root; sudo is used internally where needed.")


def _acquire_sudo(presenter) -> bool:
    if has_cached_sudo():
        log_info("✓ sudo credentials available")
        return True

    if not presenter.confirm("Sudo privileges are required. Continue?", title="Sudo"):
        raise PrivilegeDeniedError("Sudo privileges are required to continue.")
    if not refresh_sudo():
        raise PrivilegeDeniedError("Failed to obtain sudo privileges.")
    log_info("✓ sudo credentials acquired")
    return True


def validate(require_root: bool, presenter) -> bool:
    """Gate a flow on OS, effective user and sudo availability.

    Checks run in a fixed order: OS first, then the effective user, then
    (for non-root flows) sudo.

    Returns:
        Whether sudo escalation is available for this run.

    Raises:
        UnsupportedOSError: The host is not Ubuntu.
        PrivilegeDeniedError: Wrong effective user, or sudo declined/refused.
    """
    log_step("Checking system requirements...")
    _check_ubuntu()
    _check_user(require_root)
    if require_root:
        return False
    return _acquire_sudo(presenter)


def check_driver_installed():
    """The container toolkit needs a working NVIDIA driver first."""
    if not command_exists("nvidia-smi"):
        raise DriverMissingError(
            "NVIDIA driver is not installed. Install it first, for example:\n"
            f"  {DRIVER_INSTALL_HINT}")
    log_info("✓ NVIDIA driver detected")


def run_system_check(config, presenter) -> bool:
    """Report on the host without changing anything.

    Returns:
        True if every check passed.
    """
    presenter.step("Running system check...")
    results: list[tuple[str, bool]] = []

    results.append(("Ubuntu operating system", is_ubuntu(read_os_release())))

    if os.geteuid() == 0:
        results.append(("Running as root", True))
    else:
        results.append(("Passwordless sudo available", has_cached_sudo()))

    if config.skip_gpu_check:
        results.append(("NVIDIA GPU (check skipped)", True))
    else:
        gpu = detect_gpu(skip=False, install_prerequisites=False)
        label = "NVIDIA GPU detected"
        if gpu.present:
            label += f" ({gpu.gpu_class.value})"
        results.append((label, gpu.present))

    results.append(("NVIDIA driver (nvidia-smi)", command_exists("nvidia-smi")))

    lines = [f"{'✓' if ok else '✗'} {label}" for label, ok in results]
    presenter.report("System Check Results", lines)

    passed = all(ok for _, ok in results)
    if passed:
        presenter.success("All system checks passed!")
    else:
        presenter.error("Some system checks failed. Please resolve the issues before installation.")
    return passed
