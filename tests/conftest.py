"""Shared test fixtures for nvidia-provisioner tests."""

import os
import subprocess
from unittest.mock import patch

import pytest

from nvidia_provisioner.config import RunConfig
from nvidia_provisioner.models import (
    ContainerRuntime, Flow, GpuClass, HostProfile, OSFamily, SessionMode,
)
from nvidia_provisioner.nvidia import blacklist, drivers
from nvidia_provisioner.utils import system
from nvidia_provisioner.utils.logging import configure_log_file
from nvidia_provisioner.utils.presenter import Presenter

UBUNTU_2204 = """\
PRETTY_NAME="Ubuntu 22.04.4 LTS"
NAME="Ubuntu"
VERSION_ID="22.04"
VERSION_CODENAME=jammy
ID=ubuntu
ID_LIKE=debian
UBUNTU_CODENAME=jammy
"""

DEBIAN_12 = """\
PRETTY_NAME="Debian GNU/Linux 12 (bookworm)"
NAME="Debian GNU/Linux"
VERSION_ID="12"
VERSION_CODENAME=bookworm
ID=debian
"""

LSPCI_TESLA = (
    "00:02.0 VGA compatible controller: Intel Corporation Device 4680 (rev 0c)\n"
    "01:00.0 3D controller: NVIDIA Corporation GA100 [A100 PCIe 40GB] (rev a1)\n"
)
LSPCI_GEFORCE = (
    "01:00.0 VGA compatible controller: NVIDIA Corporation AD104 [GeForce RTX 4070] (rev a1)\n"
    "01:00.1 Audio device: NVIDIA Corporation Device 22bc (rev a1)\n"
)
LSPCI_NO_NVIDIA = "00:02.0 VGA compatible controller: Intel Corporation Device 4680 (rev 0c)\n"

NVIDIA_SMI = """\
+-----------------------------------------------------------------------------+
| NVIDIA-SMI 535.183.01   Driver Version: 535.183.01   CUDA Version: 12.2     |
+-----------------------------------------------------------------------------+
"""


# ---------------------------------------------------------------------------
# Fake shell
# ---------------------------------------------------------------------------

class FakeShell:
    """Stands in for ``subprocess.run``: records commands, answers by substring.

    Rules added later win over earlier ones.  Unmatched commands succeed with
    empty output.
    """

    def __init__(self):
        self.calls: list[str] = []
        self._rules: list[tuple[str, int, str, object]] = []

    def on(self, fragment, returncode=0, stdout="", raises=None):
        self._rules.append((fragment, returncode, stdout, raises))
        return self

    def __call__(self, cmd, **kwargs):
        text = cmd if isinstance(cmd, str) else " ".join(cmd)
        self.calls.append(text)
        for fragment, returncode, stdout, raises in reversed(self._rules):
            if fragment in text:
                if raises is not None:
                    raise raises
                return subprocess.CompletedProcess(cmd, returncode, stdout=stdout)
        return subprocess.CompletedProcess(cmd, 0, stdout="")

    def ran(self, fragment) -> bool:
        return any(fragment in call for call in self.calls)

    def index(self, fragment) -> int:
        for i, call in enumerate(self.calls):
            if fragment in call:
                return i
        raise AssertionError(f"{fragment!r} was never run; calls: {self.calls}")

    def count(self, fragment) -> int:
        return sum(1 for call in self.calls if fragment in call)


class Binaries:
    """Stands in for ``shutil.which`` with a mutable set of installed tools."""

    def __init__(self, *names):
        self.available = set(names)

    def __call__(self, name, *args, **kwargs):
        return f"/usr/bin/{name}" if name in self.available else None


@pytest.fixture
def shell():
    fake = FakeShell()
    with patch("nvidia_provisioner.utils.system.subprocess.run", new=fake):
        yield fake


@pytest.fixture
def binaries():
    fake = Binaries()
    with patch("nvidia_provisioner.utils.system.shutil.which", new=fake):
        yield fake


# ---------------------------------------------------------------------------
# Host state
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def run_log(tmp_path):
    return configure_log_file(str(tmp_path / "logs" / "run.log"))


@pytest.fixture
def os_release(tmp_path, monkeypatch):
    """Write /etc/os-release contents into a temp file and point the tool at it."""
    path = tmp_path / "os-release"

    def _write(content=UBUNTU_2204):
        path.write_text(content)
        monkeypatch.setattr(system, "OS_RELEASE_PATH", str(path))
        return path

    _write()
    return _write


@pytest.fixture
def as_root(monkeypatch):
    monkeypatch.setattr(os, "geteuid", lambda: 0)


@pytest.fixture
def as_user(monkeypatch):
    monkeypatch.setattr(os, "geteuid", lambda: 1000)


@pytest.fixture
def text_console(monkeypatch):
    """Local login on tty1 with no display."""
    monkeypatch.setattr(os, "ttyname", lambda fd: "/dev/tty1")
    for var in ("DISPLAY", "WAYLAND_DISPLAY", "SSH_CONNECTION", "SSH_CLIENT"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("TERM", "linux")


@pytest.fixture
def desktop_session(monkeypatch):
    """Terminal emulator inside a running X session."""
    monkeypatch.setattr(os, "ttyname", lambda fd: "/dev/pts/0")
    for var in ("WAYLAND_DISPLAY", "SSH_CONNECTION", "SSH_CLIENT"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("DISPLAY", ":0")
    monkeypatch.setenv("TERM", "xterm-256color")


@pytest.fixture
def etc(tmp_path, monkeypatch):
    """Redirect every file the flows touch under /etc, /usr and /opt into tmp_path."""
    root = tmp_path / "root"
    modprobe = root / "etc" / "modprobe.d"
    modprobe.mkdir(parents=True)
    (root / "etc" / "X11").mkdir(parents=True)

    monkeypatch.setattr(blacklist, "MODPROBE_DIR", str(modprobe))
    monkeypatch.setattr(blacklist, "BLACKLIST_PATH", str(modprobe / "nvidia-blacklist.conf"))
    monkeypatch.setattr(drivers, "LEFTOVER_PATHS", (
        str(root / "usr" / "local" / "cuda*"),
        str(root / "opt" / "cuda*"),
        str(root / "etc" / "nvidia*"),
    ))
    monkeypatch.setattr(drivers, "XORG_CONF", str(root / "etc" / "X11" / "xorg.conf"))
    monkeypatch.setattr(drivers, "RUN_UNINSTALLERS", (
        (str(root / "usr" / "bin" / "nvidia-uninstall"), "--silent"),
    ))
    return root


@pytest.fixture
def no_sleep():
    with patch("nvidia_provisioner.system.reboot.time.sleep") as sleep:
        yield sleep


# ---------------------------------------------------------------------------
# Presenter
# ---------------------------------------------------------------------------

class ScriptedPresenter(Presenter):
    """Records everything shown; answers questions from a prompt->answer map."""

    def __init__(self, answers=None):
        self.answers = dict(answers or {})
        self.messages: list[tuple[str, str]] = []
        self.questions: list[str] = []
        self.reports: list[tuple[str, list[str]]] = []
        self.progress_calls: list[tuple[int, int, str]] = []

    def info(self, message):
        self.messages.append(("info", message))

    def success(self, message):
        self.messages.append(("success", message))

    def warning(self, message):
        self.messages.append(("warning", message))

    def error(self, message):
        self.messages.append(("error", message))

    def step(self, title):
        self.messages.append(("step", title))

    def confirm(self, prompt, title="Confirm", default=False):
        self.questions.append(prompt)
        for fragment, answer in self.answers.items():
            if fragment in prompt:
                return answer
        return False

    def progress(self, step, total, text):
        self.progress_calls.append((step, total, text))

    def report(self, title, lines):
        self.reports.append((title, list(lines)))

    def said(self, fragment, kind=None) -> bool:
        return any(fragment in text and (kind is None or kind == k)
                   for k, text in self.messages)


@pytest.fixture
def presenter():
    return ScriptedPresenter()


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

def make_profile(**overrides) -> HostProfile:
    values = dict(
        os_family=OSFamily.UBUNTU,
        distribution_id="ubuntu2204",
        codename="jammy",
        is_root=True,
        has_sudo=False,
        session_mode=SessionMode.TEXT,
        gpu_present=True,
        gpu_class=GpuClass.SERVER,
        container_runtimes=frozenset(),
    )
    values.update(overrides)
    return HostProfile(**values)


def make_config(flow=Flow.INSTALL_DRIVER, **overrides) -> RunConfig:
    return RunConfig.from_options(flow, log_file="/tmp/test-run.log", **overrides)


@pytest.fixture
def server_profile():
    return make_profile()


@pytest.fixture
def docker_profile():
    return make_profile(is_root=False, has_sudo=True,
                        container_runtimes=frozenset({ContainerRuntime.DOCKER}))
