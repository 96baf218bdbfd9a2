"""NVIDIA Container Toolkit installation"""

import subprocess

from ..errors import (
    PackageInstallError, PackageListUpdateError, RepositoryConfigError, RuntimeConfigError,
)
from ..executor import Step
from ..models import ContainerRuntime, StepResult, StepStatus
from ..utils.logging import log_info
from ..utils.system import AptManager, privileged, run_command

NO_RUNTIME_HINT = (
    "No supported container runtime detected. After installing Docker, containerd, "
    "or CRI-O, run: sudo nvidia-ctk runtime configure --runtime=<runtime-name>"
)


def configure_repository(repo, experimental: bool) -> str:
    """Add the signing key and the signed source list for the toolkit repository."""
    log_info("Configuring NVIDIA Container Toolkit repository...")
    try:
        run_command(f"curl -fsSL {repo.key_url} | "
                    f"{privileged(f'gpg --batch --yes --dearmor -o {repo.signed_by}')}")
        run_command(f"curl -s -L {repo.list_url} | "
                    f"sed 's#deb https://#deb [signed-by={repo.signed_by}] https://#g' | "
                    f"{privileged(f'tee {repo.list_path}')} > /dev/null")
        if experimental:
            log_info("Enabling experimental package repository...")
            run_command(privileged(f"sed -i -e '/experimental/ s/^#//g' {repo.list_path}"))
    except subprocess.CalledProcessError as exc:
        raise RepositoryConfigError(f"Failed to configure the {repo.name} repository") from exc

    if experimental:
        return "Repository configured (experimental packages enabled)"
    return "Repository configured"


def update_package_list(apt: AptManager) -> str:
    try:
        apt.update()
    except subprocess.CalledProcessError as exc:
        raise PackageListUpdateError("Failed to update package list") from exc
    return "Package list updated"


def install_toolkit_packages(apt: AptManager, packages) -> str:
    """Install every toolkit package at the same pinned version in one transaction."""
    log_info("Installing NVIDIA Container Toolkit...")
    try:
        apt.install(*packages)
    except subprocess.CalledProcessError as exc:
        raise PackageInstallError("Failed to install NVIDIA Container Toolkit") from exc
    return f"Installed {', '.join(packages)}"


def configure_runtime(runtime) -> str:
    log_info(f"Configuring {runtime.label} runtime...")
    try:
        run_command(privileged(f"nvidia-ctk runtime configure --runtime={runtime.value}"))
        run_command(privileged(f"systemctl restart {runtime.service}"))
    except subprocess.CalledProcessError as exc:
        raise RuntimeConfigError(f"Failed to configure {runtime.label}") from exc
    return f"{runtime.label} configured"


def _no_runtime_detected() -> StepResult:
    return StepResult("Configure container runtimes", StepStatus.WARNING, NO_RUNTIME_HINT)


def install_steps(plan, apt=None) -> list[Step]:
    """Toolkit installation, in order: repository, package list, packages, runtimes."""
    apt = apt or AptManager()
    steps = []
    for repo in plan.repositories_to_add:
        steps.append(Step("Configure repository",
                          lambda repo=repo: configure_repository(repo, plan.experimental_enabled),
                          fatal=True, error=RepositoryConfigError,
                          description="Configuring NVIDIA repository..."))
    steps += [
        Step("Update package list", lambda: update_package_list(apt),
             fatal=True, error=PackageListUpdateError, description="Updating package list..."),
        Step("Install NVIDIA Container Toolkit",
             lambda: install_toolkit_packages(apt, plan.toolkit_packages),
             fatal=True, error=PackageInstallError,
             description="Installing NVIDIA Container Toolkit..."),
    ]

    runtimes = [rt for rt in ContainerRuntime if rt in plan.runtimes_to_configure]
    if not runtimes:
        steps.append(Step("Configure container runtimes", _no_runtime_detected))
    for runtime in runtimes:
        steps.append(Step(f"Configure {runtime.label} runtime",
                          lambda runtime=runtime: configure_runtime(runtime),
                          error=RuntimeConfigError))
    return steps
