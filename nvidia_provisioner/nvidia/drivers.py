"""NVIDIA driver installation and removal"""

import glob
import os
import shutil
import subprocess
import tempfile

from ..errors import (
    BlacklistIOError, ModuleLoadError, ModuleUnloadError, PackageInstallError,
    PackageListUpdateError, RemovalError, RepositoryConfigError,
)
from ..executor import Step
from ..utils.logging import log_info, log_warn
from ..utils.system import (
    AptManager, command_exists, get_kernel_version, is_module_loaded, run_command,
)
from .blacklist import BlacklistFile, find_other_blacklists
from .planner import KERNEL_MODULES, PURGE_SPECS

NO_CDROM = "-o APT::CDROM::NoMount=true"

RUN_UNINSTALLERS = (
    ("/usr/bin/nvidia-uninstall", "--silent"),
    ("/usr/bin/nvidia-installer", "--uninstall --silent"),
)
LEFTOVER_PATHS = (
    "/usr/local/cuda*",
    "/opt/cuda*",
    "/usr/lib/nvidia*",
    "/var/lib/nvidia*",
    "/etc/nvidia*",
)
XORG_CONF = "/etc/X11/xorg.conf"


# -- installation ---------------------------------------------------------

def install_detection_assistant(apt: AptManager, candidates) -> str:
    """Install the first driver detection tool apt can find."""
    for package in candidates:
        try:
            apt.install(package)
        except subprocess.CalledProcessError:
            log_warn(f"{package} not available, trying alternative packages...")
            continue
        return f"Installed {package}"
    raise PackageInstallError("Could not install GPU detection tools")


def show_recommended_drivers() -> str:
    if command_exists("nvidia-driver-assistant"):
        run_command("nvidia-driver-assistant --distro")
    elif command_exists("ubuntu-drivers"):
        run_command("ubuntu-drivers devices")
    else:
        return "No driver detection tool available, proceeding with default selection"
    return "Above information shows recommended drivers for your system"


def install_kernel_headers(apt: AptManager) -> str:
    package = f"linux-headers-{get_kernel_version()}"
    apt.install(package)
    return f"Installed {package}"


def add_cuda_repository(repo) -> str:
    """Install the CUDA keyring package, which registers the repository."""
    deb_name = os.path.basename(repo.key_url)
    with tempfile.TemporaryDirectory(prefix="cuda-keyring.") as workdir:
        deb_path = os.path.join(workdir, deb_name)
        log_info(f"Downloading CUDA keyring from {repo.key_url}")
        try:
            run_command(f"wget -q -O {deb_path} {repo.key_url}")
        except subprocess.CalledProcessError as exc:
            raise RepositoryConfigError(f"Failed to download CUDA keyring from {repo.key_url}") from exc
        try:
            run_command(f"dpkg -i {deb_path}")
        except subprocess.CalledProcessError as exc:
            raise RepositoryConfigError("Failed to install CUDA keyring") from exc
    return f"Added {repo.name} repository"


def refresh_package_lists(apt: AptManager) -> str:
    """apt update without mounting CD-ROM sources; retry once accepting release info changes."""
    try:
        apt.update(NO_CDROM)
    except subprocess.CalledProcessError:
        log_warn("Some repositories failed to update, retrying...")
        try:
            apt.update(f"--allow-releaseinfo-change {NO_CDROM}")
        except subprocess.CalledProcessError as exc:
            raise PackageListUpdateError("Failed to update package lists") from exc
    return "Package lists updated"


def install_driver_package(apt: AptManager, package: str) -> str:
    log_info(f"Installing {package}...")
    try:
        apt.install(package)
    except subprocess.CalledProcessError as exc:
        raise PackageInstallError(f"Failed to install {package}") from exc
    return f"Installed {package}"


def disable_blacklist() -> str:
    message = BlacklistFile().disable()
    others = find_other_blacklists()
    if others:
        message += f"; review manually: {', '.join(others)}"
    return message


def load_nvidia_module() -> str:
    try:
        run_command("modprobe nvidia")
    except subprocess.CalledProcessError as exc:
        raise ModuleLoadError(
            "Failed to load NVIDIA kernel module. This is normal until the system is rebooted.") from exc
    return "Loaded NVIDIA kernel module"


def install_steps(plan, apt=None) -> list[Step]:
    """Driver installation, in order.  Runs as root."""
    apt = apt or AptManager()
    steps = [
        Step("Install driver detection assistant",
             lambda: install_detection_assistant(apt, plan.prerequisites),
             error=PackageInstallError),
        Step("Show recommended drivers", show_recommended_drivers),
        Step("Install kernel headers", lambda: install_kernel_headers(apt),
             fatal=True, error=PackageInstallError),
    ]
    for repo in plan.repositories_to_add:
        steps.append(Step(f"Add {repo.name} repository", lambda repo=repo: add_cuda_repository(repo),
                          fatal=True, error=RepositoryConfigError))
    steps += [
        Step("Update package lists", lambda: refresh_package_lists(apt),
             fatal=True, error=PackageListUpdateError),
        Step(f"Install {plan.driver_package}", lambda: install_driver_package(apt, plan.driver_package),
             fatal=True, error=PackageInstallError),
        Step("Disable NVIDIA blacklist", disable_blacklist, error=BlacklistIOError),
        Step("Load NVIDIA kernel module", load_nvidia_module, error=ModuleLoadError),
    ]
    return steps


# -- removal --------------------------------------------------------------

def show_gpu_info() -> str:
    result = run_command("lspci -k | grep -EA3 'VGA|3D|Display'", check=False)
    if result.returncode != 0:
        return "No GPU information found"
    return "GPU information listed above"


def remove_run_installation() -> str:
    """Run the uninstallers a ``.run`` driver install leaves behind."""
    found = [(path, args) for path, args in RUN_UNINSTALLERS if os.path.isfile(path)]
    if not found:
        return "No NVIDIA .run installation found"

    failed = []
    for path, args in found:
        log_info(f"Found {path}, attempting to uninstall...")
        try:
            run_command(f"{path} {args}")
        except subprocess.CalledProcessError:
            log_warn(f"{os.path.basename(path)} failed or partially completed")
            failed.append(path)
    if failed:
        raise RemovalError(f"Uninstaller failed: {', '.join(failed)}")
    return "Removed NVIDIA .run installation"


def purge_packages(apt: AptManager, spec) -> str:
    try:
        apt.run(f"{spec.command} {spec.pattern} -y")
    except subprocess.CalledProcessError as exc:
        raise RemovalError(f"Some {spec.description} may not exist") from exc
    return f"Removed {spec.description}"


def remove_orphans(apt: AptManager) -> str:
    apt.autoremove()
    apt.autoclean()
    return "Removed orphaned dependencies and cleaned package cache"


def unload_kernel_modules(modules=KERNEL_MODULES) -> str:
    """Unload NVIDIA modules, dependents first; modules not loaded are skipped."""
    unloaded, failed = [], []
    for module in modules:
        if not is_module_loaded(module):
            continue
        log_info(f"Removing module: {module}")
        try:
            run_command(f"modprobe -r {module}")
        except subprocess.CalledProcessError:
            failed.append(module)
            continue
        unloaded.append(module)

    if failed:
        raise ModuleUnloadError(f"Could not remove module(s) {', '.join(failed)} (may be in use)")
    if not unloaded:
        return "No NVIDIA kernel modules loaded"
    return f"Unloaded {', '.join(unloaded)}"


def activate_blacklist() -> str:
    return BlacklistFile().activate()


def cleanup_nvidia_files() -> str:
    removed = []
    for pattern in LEFTOVER_PATHS:
        for path in sorted(glob.glob(pattern)):
            log_info(f"Removing {path}")
            if os.path.isdir(path) and not os.path.islink(path):
                shutil.rmtree(path)
            else:
                os.remove(path)
            removed.append(path)

    if os.path.isfile(XORG_CONF):
        log_warn(f"Found {XORG_CONF} - backing up to xorg.conf.backup")
        shutil.move(XORG_CONF, f"{XORG_CONF}.backup")

    return f"Removed {len(removed)} leftover path(s)"


def update_system_configuration() -> str:
    log_info("Updating initramfs...")
    run_command("update-initramfs -u")
    log_info("Updating GRUB...")
    run_command("update-grub")
    log_info("Updating dynamic linker cache...")
    run_command("ldconfig")
    return "initramfs, GRUB and linker cache updated"


def uninstall_steps(apt=None) -> list[Step]:
    """Complete driver removal, in order.  Every step is best-effort."""
    apt = apt or AptManager()
    steps = [
        Step("Show GPU information", show_gpu_info),
        Step("Remove .run installation", remove_run_installation, error=RemovalError),
    ]
    for spec in PURGE_SPECS:
        steps.append(Step(f"Purge {spec.description}", lambda spec=spec: purge_packages(apt, spec),
                          error=RemovalError))
    steps += [
        Step("Remove orphaned packages", lambda: remove_orphans(apt), error=RemovalError),
        Step("Unload NVIDIA kernel modules", unload_kernel_modules, error=ModuleUnloadError),
        Step("Create NVIDIA blacklist", activate_blacklist, error=BlacklistIOError),
        Step("Remove leftover NVIDIA files", cleanup_nvidia_files, error=RemovalError),
        Step("Update system configuration", update_system_configuration),
        Step("Disable NVIDIA blacklist", disable_blacklist, error=BlacklistIOError),
    ]
    return steps


def text_mode_instructions() -> list[str]:
    return [
        "To safely remove the NVIDIA driver, run this command in text mode.",
        "",
        "1. Switch to text mode:",
        "   sudo systemctl isolate multi-user.target",
        "2. Log in on the text console and run this command again.",
        "3. When finished, return to graphical mode:",
        "   sudo systemctl isolate graphical.target",
        "",
        "Warning: switching to text mode terminates all running GUI applications.",
    ]
