"""Hardware and session detection"""

import os
import re
import subprocess

from ..models import (
    ContainerRuntime, GpuClass, GpuDetection, HostProfile, OSFamily, SessionMode,
)
from ..utils.logging import log_info, log_warn
from ..utils.system import (
    AptManager, command_exists, get_codename, get_distribution_id, get_os_info,
    run_command,
)

_DISPLAY_CLASS = re.compile(r"vga|3d|display", re.IGNORECASE)
_TEXT_CONSOLE = re.compile(r"^/dev/tty[1-6]$")


def _ensure_lspci(install_prerequisites: bool) -> bool:
    """Make sure ``lspci`` is available, installing pciutils if allowed."""
    if command_exists("lspci"):
        return True
    if not install_prerequisites:
        log_warn("lspci not found; cannot scan the PCI bus")
        return False

    log_warn("lspci command not found. Installing pciutils...")
    try:
        AptManager().install("pciutils")
    except subprocess.CalledProcessError:
        log_warn("Could not install pciutils")
        return False
    return command_exists("lspci")


def parse_gpu_devices(lspci_output: str) -> tuple[str, ...]:
    """NVIDIA display controllers from ``lspci`` output"""
    return tuple(
        line.strip() for line in lspci_output.splitlines()
        if _DISPLAY_CLASS.search(line) and "nvidia" in line.lower()
    )


def classify_gpu(devices) -> GpuClass:
    if not devices:
        return GpuClass.UNKNOWN
    if any("geforce" in device.lower() for device in devices):
        return GpuClass.DESKTOP
    return GpuClass.SERVER


def detect_gpu(skip: bool, install_prerequisites: bool = True) -> GpuDetection:
    """Scan the PCI bus for NVIDIA GPUs.

    Args:
        skip: Assume a GPU is present without touching the PCI bus
        install_prerequisites: Whether pciutils may be installed when lspci is missing

    Returns:
        GpuDetection; GeForce cards are DESKTOP, any other NVIDIA device SERVER
    """
    if skip:
        log_info("Skipping GPU check as requested")
        return GpuDetection(present=True, gpu_class=GpuClass.UNKNOWN)

    log_info("Checking for NVIDIA GPU...")
    if not _ensure_lspci(install_prerequisites):
        return GpuDetection(present=False, gpu_class=GpuClass.UNKNOWN)

    output = run_command("lspci", capture_output=True, check=False)
    devices = parse_gpu_devices(output or "")
    if not devices:
        log_warn("No NVIDIA GPU detected")
        return GpuDetection(present=False, gpu_class=GpuClass.UNKNOWN)

    gpu_class = classify_gpu(devices)
    for device in devices:
        log_info(f"Found NVIDIA GPU: {device}")
    if gpu_class is GpuClass.DESKTOP:
        log_info("Detected GeForce series GPU")
    else:
        log_info("Detected non-GeForce GPU (likely professional/server series)")
    return GpuDetection(present=True, gpu_class=gpu_class, devices=devices)


def is_remote_session(environ) -> bool:
    """SSH session, or an xterm-like terminal with no display attached"""
    if environ.get("SSH_CONNECTION") or environ.get("SSH_CLIENT"):
        return True
    return environ.get("TERM", "").startswith("xterm") and not environ.get("DISPLAY")


def classify_session(tty: str, environ, graphical_target_state: str) -> SessionMode:
    """Decide whether a graphical session is running on this host.

    First matching rule wins: a tty1-tty6 console, a remote session, an
    inactive graphical.target, a display variable.  Anything else is TEXT.
    """
    if tty and _TEXT_CONSOLE.match(tty):
        return SessionMode.TEXT
    if is_remote_session(environ):
        return SessionMode.TEXT
    if graphical_target_state == "inactive":
        return SessionMode.TEXT
    if environ.get("DISPLAY") or environ.get("WAYLAND_DISPLAY"):
        return SessionMode.GRAPHICAL
    return SessionMode.TEXT


def current_tty() -> str:
    try:
        return os.ttyname(0)
    except OSError:
        return ""


def graphical_target_state() -> str:
    state = run_command("systemctl is-active graphical.target", capture_output=True, check=False)
    return state.splitlines()[0] if state else "unknown"


def detect_session() -> SessionMode:
    tty = current_tty()
    target = graphical_target_state()
    mode = classify_session(tty, os.environ, target)
    log_info(f"Current TTY: {tty or 'unknown'}")
    log_info(f"Graphical target active: {target}")
    return mode


def detect_container_runtimes() -> frozenset[ContainerRuntime]:
    """Container engines whose binaries are on PATH"""
    found = frozenset(rt for rt in ContainerRuntime if command_exists(rt.binary))
    for runtime in sorted(found, key=lambda rt: rt.value):
        log_info(f"{runtime.label} detected")
    return found


def build_host_profile(config, has_sudo: bool, detect_hardware_tools: bool = True) -> HostProfile:
    """Detect everything a flow needs to know about the host, once."""
    os_info = get_os_info()
    os_family = OSFamily.UBUNTU if os_info.get("ID") == "ubuntu" else OSFamily.OTHER

    session = detect_session()
    if session is SessionMode.TEXT and is_remote_session(os.environ):
        session = SessionMode.SSH

    gpu = detect_gpu(config.skip_gpu_check, install_prerequisites=detect_hardware_tools)

    return HostProfile(
        os_family=os_family,
        distribution_id=get_distribution_id(os_info),
        codename=get_codename(os_info),
        is_root=os.geteuid() == 0,
        has_sudo=has_sudo,
        session_mode=session,
        gpu_present=gpu.present,
        gpu_class=gpu.gpu_class,
        container_runtimes=detect_container_runtimes(),
    )
