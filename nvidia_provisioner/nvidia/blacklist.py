"""NVIDIA kernel module blacklist.

The blacklist file is toggled, never removed: ``activate`` writes every
entry, ``disable`` comments them out.  The first time an existing file is
edited a ``.bak`` copy is kept next to it.
"""

import glob
import os
import re
import shutil
import tempfile

from ..errors import BlacklistIOError
from ..models import BlacklistState
from ..utils.logging import log_info, log_warn

BLACKLIST_PATH = "/etc/modprobe.d/nvidia-blacklist.conf"
MODPROBE_DIR = "/etc/modprobe.d"

BLACKLISTED_MODULES = (
    "nvidia", "nvidia-drm", "nvidia-modeset", "nvidia-uvm",
    "nvidiafb", "nouveau", "rivafb", "rivatv",
)
HEADER = "# Blacklist NVIDIA drivers"

_ACTIVE_LINE = re.compile(r"^blacklist ", re.MULTILINE)


def render_blacklist() -> str:
    lines = [HEADER] + [f"blacklist {module}" for module in BLACKLISTED_MODULES]
    return "\n".join(lines) + "\n"


class BlacklistFile:
    """The modprobe blacklist that keeps NVIDIA/nouveau modules from loading."""

    def __init__(self, path: str | None = None):
        self.path = path or BLACKLIST_PATH

    @property
    def backup_path(self) -> str:
        return f"{self.path}.bak"

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def read(self) -> str:
        try:
            with open(self.path, 'r') as f:
                return f.read()
        except OSError as exc:
            raise BlacklistIOError(f"Cannot read {self.path}: {exc}") from exc

    @property
    def state(self) -> BlacklistState:
        if not self.exists():
            return BlacklistState.ABSENT
        if _ACTIVE_LINE.search(self.read()):
            return BlacklistState.ACTIVE
        return BlacklistState.DISABLED

    def _backup_once(self):
        if not self.exists() or os.path.exists(self.backup_path):
            return
        try:
            shutil.copy2(self.path, self.backup_path)
        except OSError as exc:
            raise BlacklistIOError(f"Cannot back up {self.path}: {exc}") from exc
        log_info(f"Created backup: {self.backup_path}")

    def _write(self, content: str):
        """Replace the file contents atomically."""
        directory = os.path.dirname(self.path) or "."
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".nvidia-blacklist.", dir=directory)
            try:
                with os.fdopen(fd, 'w') as f:
                    f.write(content)
                os.chmod(tmp_path, 0o644)
                os.replace(tmp_path, self.path)
            except OSError:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as exc:
            raise BlacklistIOError(f"Cannot write {self.path}: {exc}") from exc

    def activate(self) -> str:
        """Blacklist every NVIDIA and nouveau module."""
        log_info("Creating NVIDIA blacklist configuration...")
        self._backup_once()
        self._write(render_blacklist())
        message = f"Blacklist configuration created at {self.path}"
        log_info(message)
        return message

    def disable(self) -> str:
        """Comment out every ``blacklist`` line; a missing file is left alone."""
        if not self.exists():
            message = f"No blacklist file found at {self.path}"
            log_info(message)
            return message

        content = self.read()
        if not _ACTIVE_LINE.search(content):
            message = f"Blacklist entries in {self.path} already disabled"
            log_info(message)
            return message

        self._backup_once()
        self._write(_ACTIVE_LINE.sub("#blacklist ", content))
        message = f"Disabled blacklist entries in {self.path}"
        log_info(message)
        return message


def find_other_blacklists(directory: str | None = None, own_path: str | None = None) -> list[str]:
    """Other modprobe blacklist files that mention nvidia or nouveau."""
    directory = directory or MODPROBE_DIR
    own_path = own_path or BLACKLIST_PATH
    found = []
    for path in sorted(glob.glob(os.path.join(directory, "*blacklist*.conf"))):
        if os.path.abspath(path) == os.path.abspath(own_path):
            continue
        try:
            with open(path, 'r') as f:
                content = f.read().lower()
        except OSError:
            continue
        if "nvidia" in content or "nouveau" in content:
            log_warn(f"Found potential NVIDIA-related blacklist in: {path}")
            found.append(path)
    return found
