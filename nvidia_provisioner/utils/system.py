"""System utilities for command execution and package management"""

import os
import shutil
import subprocess

from .logging import log_info, log_error, log_output

OS_RELEASE_PATH = "/etc/os-release"


def privileged(cmd: str) -> str:
    """Prefix ``cmd`` with sudo unless we already run as root.

    Root-only flows run everything directly; user flows acquire a sudo
    credential up front and escalate per command.
    """
    if os.geteuid() == 0:
        return cmd
    return f"sudo {cmd}"


def run_command(cmd, check=True, capture_output=False, timeout=None):
    """
    Execute a system command with logging

    Output is always written to the run log.  It is echoed to the console
    unless ``capture_output`` is set, in which case it is returned instead.

    Args:
        cmd: Shell command to execute
        check: Whether to raise CalledProcessError on a non-zero exit
        capture_output: Whether to return stdout instead of echoing it
        timeout: Seconds before the command is killed (TimeoutExpired is raised)

    Returns:
        CompletedProcess object, or the stripped output if capture_output=True
    """
    log_info(f"Running: {cmd}")

    try:
        result = subprocess.run(cmd, shell=True, stdout=subprocess.PIPE,
                                stderr=subprocess.STDOUT, text=True,
                                stdin=subprocess.DEVNULL, timeout=timeout)
    except subprocess.TimeoutExpired:
        log_error(f"Command timed out after {timeout}s: {cmd}")
        raise

    output = result.stdout or ""
    log_output(output, echo=not capture_output)

    if result.returncode != 0:
        log_error(f"Command failed (exit {result.returncode}): {cmd}")
        if check:
            raise subprocess.CalledProcessError(result.returncode, cmd, output=output)

    if capture_output:
        return output.strip()
    return result


def has_cached_sudo() -> bool:
    """True if sudo works without asking for a password right now"""
    return run_command("sudo -n true", check=False).returncode == 0


def refresh_sudo() -> bool:
    """Prompt for the sudo password on the controlling terminal.

    Runs outside ``run_command`` so sudo can read the password from the
    operator's stdin.
    """
    log_info("Running: sudo -v")
    return subprocess.run(["sudo", "-v"]).returncode == 0


def command_exists(name: str) -> bool:
    """Return True if ``name`` resolves on PATH."""
    return shutil.which(name) is not None


class AptManager:
    """Manages apt operations, escalating through sudo when needed"""

    @staticmethod
    def _apt(args: str) -> str:
        return privileged(f"DEBIAN_FRONTEND=noninteractive apt-get {args}")

    def run(self, args: str, check: bool = True):
        """Run an arbitrary apt-get subcommand"""
        return run_command(self._apt(args), check=check)

    def update(self, extra_args: str = ""):
        """Refresh package lists"""
        self.run(f"update {extra_args}".strip())

    def install(self, *packages):
        """Install packages using apt"""
        package_list = ' '.join(packages)
        self.run(f"install -y {package_list}")

    def remove(self, *packages, purge: bool = False, check: bool = True):
        """Remove packages

        Args:
            packages: Package names (or apt patterns) to remove
            purge: Whether to purge configuration files
            check: Whether to raise on failure (default True)
        """
        package_list = ' '.join(packages)
        flag = "--purge " if purge else ""
        return self.run(f"remove {flag}-y {package_list}", check=check)

    def autoremove(self, purge: bool = False, check: bool = True):
        """Remove unnecessary packages"""
        flag = "--purge " if purge else ""
        return self.run(f"autoremove {flag}-y", check=check)

    def autoclean(self, check: bool = True):
        """Drop obsolete package files from the local cache"""
        return self.run("autoclean -y", check=check)

    @staticmethod
    def is_installed(package: str) -> bool:
        """Check dpkg status for a single package"""
        status = run_command(f"dpkg -s {package}", capture_output=True, check=False)
        return bool(status) and "install ok installed" in status


def read_os_release() -> str:
    """Raw contents of /etc/os-release, or an empty string if unreadable"""
    try:
        with open(OS_RELEASE_PATH, 'r') as f:
            return f.read()
    except OSError:
        return ""


def get_os_info():
    """Get OS information from /etc/os-release"""
    info = {}
    for line in read_os_release().splitlines():
        if '=' in line:
            key, value = line.strip().split('=', 1)
            info[key] = value.strip('"')
    return info


def get_distribution_id(os_info) -> str:
    """NVIDIA repository distribution slug, e.g. 'ubuntu2204'"""
    return f"{os_info.get('ID', '')}{os_info.get('VERSION_ID', '')}".replace('.', '')


def get_codename(os_info) -> str:
    """Ubuntu release codename used by third-party APT repositories"""
    return os_info.get('UBUNTU_CODENAME') or os_info.get('VERSION_CODENAME', '')


def get_kernel_version():
    """Get current kernel release"""
    return run_command("uname -r", capture_output=True)


def is_module_loaded(module: str) -> bool:
    """Check whether a kernel module is currently loaded"""
    output = run_command("lsmod", capture_output=True, check=False)
    return any(line.split()[0] == module
               for line in (output or "").splitlines()[1:] if line.strip())
