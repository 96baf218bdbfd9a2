"""Data model shared by the provisioning flows."""

from dataclasses import dataclass, field
from enum import Enum


class Flow(Enum):
    """Top-level operations the tool can run."""
    INSTALL_DRIVER = "install-driver"
    UNINSTALL_DRIVER = "uninstall-driver"
    INSTALL_TOOLKIT = "install-toolkit"
    INSTALL_DOCKER = "install-docker"
    CHECK = "check"


class OSFamily(Enum):
    UBUNTU = "ubuntu"
    OTHER = "other"


class SessionMode(Enum):
    """How the operator is attached to the host."""
    GRAPHICAL = "graphical"
    TEXT = "text"
    SSH = "ssh"

    @property
    def is_graphical(self) -> bool:
        return self is SessionMode.GRAPHICAL


class GpuClass(Enum):
    """Consumer vs. professional/datacenter split, used to pick the driver flavor."""
    DESKTOP = "desktop"
    SERVER = "server"
    UNKNOWN = "unknown"


class ContainerRuntime(Enum):
    """Container engines the NVIDIA runtime can be registered with.

    The value is both the binary name looked up on PATH and the systemd unit.
    """
    DOCKER = "docker"
    CONTAINERD = "containerd"
    CRIO = "crio"

    @property
    def binary(self) -> str:
        return self.value

    @property
    def service(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return {"docker": "Docker", "containerd": "containerd", "crio": "CRI-O"}[self.value]


class StepStatus(Enum):
    SUCCESS = "success"
    WARNING = "warning"
    FATAL = "fatal"


class BlacklistState(Enum):
    ACTIVE = "active"
    DISABLED = "disabled"
    ABSENT = "absent"


@dataclass(frozen=True)
class GpuDetection:
    """Result of the PCI bus scan."""
    present: bool
    gpu_class: GpuClass
    devices: tuple[str, ...] = ()


@dataclass(frozen=True)
class HostProfile:
    """Everything detected about the host, built once at the start of a run."""
    os_family: OSFamily
    distribution_id: str
    codename: str
    is_root: bool
    has_sudo: bool
    session_mode: SessionMode
    gpu_present: bool
    gpu_class: GpuClass
    container_runtimes: frozenset[ContainerRuntime] = frozenset()


@dataclass(frozen=True)
class RepoSpec:
    """One APT repository registration.

    When ``list_url`` is empty, ``key_url`` points at a keyring .deb that
    carries both the key and the source entry (the CUDA repository).
    """
    name: str
    key_url: str
    list_url: str = ""
    signed_by: str = ""
    list_path: str = ""

    @property
    def is_keyring_package(self) -> bool:
        return not self.list_url


@dataclass(frozen=True)
class ActionPlan:
    """Concrete packages and repositories for one run. Never mutated."""
    driver_package: str
    toolkit_version: str
    toolkit_packages: tuple[str, ...]
    repositories_to_add: tuple[RepoSpec, ...]
    runtimes_to_configure: frozenset[ContainerRuntime]
    experimental_enabled: bool
    prerequisites: tuple[str, ...] = ()


@dataclass(frozen=True)
class StepResult:
    step_name: str
    status: StepStatus
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.SUCCESS


@dataclass(frozen=True)
class PurgeSpec:
    """One best-effort package purge pass."""
    pattern: str
    description: str
    command: str = field(default="", compare=False)
