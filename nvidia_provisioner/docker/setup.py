"""Docker Engine installation from Docker's official repository"""

import subprocess

from ..errors import (
    PackageInstallError, PackageListUpdateError, RemovalError, RepositoryConfigError,
)
from ..executor import Step
from ..utils.logging import log_info, log_warn
from ..utils.system import AptManager, privileged, run_command

UNOFFICIAL_PACKAGES = (
    "docker.io", "docker-doc", "docker-compose",
    "docker-compose-v2", "podman-docker", "containerd", "runc",
)
DOCKER_PACKAGES = (
    "docker-ce",
    "docker-ce-cli",
    "containerd.io",
    "docker-buildx-plugin",
    "docker-compose-plugin",
)
KEYRINGS_DIR = "/etc/apt/keyrings"
DOCKER_GROUP_HINT = "sudo usermod -aG docker $USER  (log out and back in afterwards)"


def remove_unofficial_packages(apt: AptManager) -> str:
    """Remove distribution Docker packages that conflict with docker-ce"""
    installed = [pkg for pkg in UNOFFICIAL_PACKAGES if apt.is_installed(pkg)]
    if not installed:
        return "No unofficial Docker packages installed"

    log_info(f"Removing {', '.join(installed)}...")
    try:
        apt.remove(*installed)
    except subprocess.CalledProcessError as exc:
        raise RemovalError(f"Could not remove {', '.join(installed)}") from exc
    return f"Removed {', '.join(installed)}"


def install_prerequisites(apt: AptManager, packages) -> str:
    log_info("Installing prerequisites...")
    try:
        apt.update()
    except subprocess.CalledProcessError as exc:
        raise PackageListUpdateError("Failed to update package lists") from exc
    try:
        apt.install(*packages)
    except subprocess.CalledProcessError as exc:
        raise PackageInstallError(f"Failed to install {', '.join(packages)}") from exc
    return f"Installed {', '.join(packages)}"


def install_gpg_key(repo) -> str:
    log_info("Downloading Docker official GPG key...")
    try:
        run_command(privileged(f"install -m 0755 -d {KEYRINGS_DIR}"))
        run_command(privileged(f"curl -fsSL {repo.key_url} -o {repo.signed_by}"))
        run_command(privileged(f"chmod a+r {repo.signed_by}"))
    except subprocess.CalledProcessError as exc:
        raise RepositoryConfigError("Failed to install the Docker GPG key") from exc
    return f"Key saved to {repo.signed_by}"


def add_repository(repo) -> str:
    """Write the Docker APT source entry for this release."""
    repo_line = (
        f'deb [arch=$(dpkg --print-architecture) signed-by={repo.signed_by}] '
        f'{repo.list_url}'
    )
    log_info("Adding Docker repository to Apt sources...")
    try:
        run_command(f'echo "{repo_line}" | {privileged(f"tee {repo.list_path}")} > /dev/null')
    except subprocess.CalledProcessError as exc:
        raise RepositoryConfigError("Failed to add the Docker repository") from exc
    return f"Repository written to {repo.list_path}"


def update_package_list(apt: AptManager) -> str:
    try:
        apt.update()
    except subprocess.CalledProcessError as exc:
        raise PackageListUpdateError("Failed to update package list") from exc
    return "Package list updated"


def install_docker_packages(apt: AptManager) -> str:
    log_info("Installing Docker Engine and related packages...")
    try:
        apt.install(*DOCKER_PACKAGES)
    except subprocess.CalledProcessError as exc:
        raise PackageInstallError("Failed to install Docker Engine") from exc
    return f"Installed {', '.join(DOCKER_PACKAGES)}"


def start_docker_service() -> str:
    log_info("Starting Docker service...")
    try:
        run_command(privileged("systemctl start docker"))
        run_command(privileged("systemctl enable docker"))
    except subprocess.CalledProcessError:
        log_warn("Docker service may not be running properly")
        raise
    return "Docker service started and enabled"


def install_steps(plan, apt=None) -> list[Step]:
    """Docker Engine installation, in order."""
    apt = apt or AptManager()
    steps = [
        Step("Remove unofficial Docker packages", lambda: remove_unofficial_packages(apt),
             error=RemovalError),
        Step("Install prerequisites", lambda: install_prerequisites(apt, plan.prerequisites),
             fatal=True, error=PackageInstallError),
    ]
    for repo in plan.repositories_to_add:
        steps += [
            Step("Install Docker GPG key", lambda repo=repo: install_gpg_key(repo),
                 fatal=True, error=RepositoryConfigError),
            Step("Add Docker repository", lambda repo=repo: add_repository(repo),
                 fatal=True, error=RepositoryConfigError),
        ]
    steps += [
        Step("Update package list", lambda: update_package_list(apt),
             fatal=True, error=PackageListUpdateError),
        Step("Install Docker Engine", lambda: install_docker_packages(apt),
             fatal=True, error=PackageInstallError),
        Step("Start Docker service", start_docker_service),
    ]
    return steps
