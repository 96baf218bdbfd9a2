"""Package action planning.

Turns a detected ``HostProfile`` and the run's ``RunConfig`` into the
concrete packages, repositories and runtimes a flow will touch.  Nothing in
here talks to the system.
"""

from ..models import ActionPlan, Flow, GpuClass, PurgeSpec, RepoSpec

DRIVER_BRANCH = "535"
DESKTOP_DRIVER = f"nvidia-driver-{DRIVER_BRANCH}"
SERVER_DRIVER = f"nvidia-driver-{DRIVER_BRANCH}-server"

TOOLKIT_VERSION = "1.17.8-1"
TOOLKIT_PACKAGE_NAMES = (
    "nvidia-container-toolkit",
    "nvidia-container-toolkit-base",
    "libnvidia-container-tools",
    "libnvidia-container1",
)

TOOLKIT_KEYRING = "/usr/share/keyrings/nvidia-container-toolkit-keyring.gpg"
TOOLKIT_LIST_PATH = "/etc/apt/sources.list.d/nvidia-container-toolkit.list"
DOCKER_KEYRING = "/etc/apt/keyrings/docker.asc"
DOCKER_LIST_PATH = "/etc/apt/sources.list.d/docker.list"

DRIVER_PREREQUISITES = ("nvidia-driver-assistant", "ubuntu-drivers-common")
DOCKER_PREREQUISITES = ("ca-certificates", "curl")

# Escalating purge passes, broadest last.  Each overlaps the previous ones;
# a pass that matches nothing is fine.
PURGE_SPECS = (
    PurgeSpec("'nvidia-driver*' 'libxnvctrl*'", "NVIDIA driver packages and libxnvctrl",
              command="remove --autoremove --purge -V"),
    PurgeSpec("'nvidia*'", "remaining nvidia packages", command="purge"),
    PurgeSpec("'^nvidia-.*'", "packages matching ^nvidia-", command="remove --purge"),
    PurgeSpec("'^libnvidia-.*'", "packages matching ^libnvidia-", command="remove --purge"),
    PurgeSpec("'^cuda-.*'", "packages matching ^cuda-", command="remove --purge"),
    PurgeSpec("'*nvidia*'", "anything else containing nvidia", command="--purge remove"),
)

# Unload order: dependents first.
KERNEL_MODULES = ("nvidia_drm", "nvidia_modeset", "nvidia_uvm", "nvidia")


def cuda_repository(distribution_id: str) -> RepoSpec:
    """CUDA repository, shipped as a keyring .deb for the given distribution"""
    return RepoSpec(
        name="cuda",
        key_url=("https://developer.download.nvidia.com/compute/cuda/repos/"
                 f"{distribution_id}/x86_64/cuda-keyring_1.1-1_all.deb"),
    )


def toolkit_repository() -> RepoSpec:
    return RepoSpec(
        name="nvidia-container-toolkit",
        key_url="https://nvidia.github.io/libnvidia-container/gpgkey",
        list_url="https://nvidia.github.io/libnvidia-container/stable/deb/nvidia-container-toolkit.list",
        signed_by=TOOLKIT_KEYRING,
        list_path=TOOLKIT_LIST_PATH,
    )


def docker_repository(codename: str) -> RepoSpec:
    return RepoSpec(
        name="docker",
        key_url="https://download.docker.com/linux/ubuntu/gpg",
        list_url=f"https://download.docker.com/linux/ubuntu {codename} stable",
        signed_by=DOCKER_KEYRING,
        list_path=DOCKER_LIST_PATH,
    )


def driver_package_for(gpu_class: GpuClass) -> str:
    return SERVER_DRIVER if gpu_class is GpuClass.SERVER else DESKTOP_DRIVER


def toolkit_packages(version: str = TOOLKIT_VERSION) -> tuple[str, ...]:
    """All four toolkit packages pinned to one version"""
    return tuple(f"{name}={version}" for name in TOOLKIT_PACKAGE_NAMES)


def _repositories(profile, flow: Flow) -> tuple[RepoSpec, ...]:
    if flow is Flow.INSTALL_DRIVER:
        return (cuda_repository(profile.distribution_id),)
    if flow is Flow.INSTALL_TOOLKIT:
        return (toolkit_repository(),)
    if flow is Flow.INSTALL_DOCKER:
        return (docker_repository(profile.codename),)
    return ()


def _prerequisites(flow: Flow) -> tuple[str, ...]:
    if flow is Flow.INSTALL_DRIVER:
        return DRIVER_PREREQUISITES
    if flow is Flow.INSTALL_DOCKER:
        return DOCKER_PREREQUISITES
    return ()


def plan(profile, config) -> ActionPlan:
    """Derive the action plan for ``config.flow`` on this host."""
    return ActionPlan(
        driver_package=driver_package_for(profile.gpu_class),
        toolkit_version=TOOLKIT_VERSION,
        toolkit_packages=toolkit_packages(),
        repositories_to_add=_repositories(profile, config.flow),
        runtimes_to_configure=frozenset(profile.container_runtimes),
        experimental_enabled=config.experimental,
        prerequisites=_prerequisites(config.flow),
    )
