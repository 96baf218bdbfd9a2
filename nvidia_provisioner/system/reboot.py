"""Reboot prompt at the end of a flow"""

import subprocess
import time

from ..utils.system import privileged, run_command

REBOOT_DELAY = 5
MANUAL_REBOOT_HINT = "Please reboot manually with: sudo reboot"

DRIVER_REBOOT_HINTS = (
    "Reboot skipped. Please remember to reboot your system manually later.",
    "After reboot, verify the installation with: nvidia-smi",
)
UNINSTALL_REBOOT_HINTS = (
    "Please remember to reboot your system manually.",
    "Run 'sudo reboot' when ready.",
    "After reboot, you can return to GUI mode with:",
    "sudo systemctl isolate graphical.target",
)
GENERIC_REBOOT_HINTS = (
    "Reboot skipped. Please remember to reboot your system manually later.",
)


def reboot_gate(presenter, delay: int = REBOOT_DELAY, hints=GENERIC_REBOOT_HINTS,
                prompt: str = "Would you like to reboot now?") -> int:
    """Offer a reboot.  Declining is a normal outcome.

    Returns:
        Exit code 0, also when the reboot command itself fails.
    """
    if presenter.confirm(prompt, title="Reboot Required"):
        presenter.info(f"Rebooting system in {delay} seconds... Press Ctrl+C to cancel.")
        time.sleep(delay)
        try:
            run_command(privileged("reboot"))
        except (subprocess.CalledProcessError, OSError) as exc:
            presenter.warning(f"Reboot failed: {exc}")
            presenter.info(MANUAL_REBOOT_HINT)
        return 0

    for line in hints:
        presenter.info(line)
    return 0
