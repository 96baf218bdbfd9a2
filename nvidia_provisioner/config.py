"""Run configuration.

A ``RunConfig`` is built once from the command line, optionally adjusted by
a single interactive pass, and then passed explicitly to everything that
needs it.
"""

import os
import tempfile
from dataclasses import dataclass, replace

from .models import Flow

LOG_DIR_NAME = "nvidia-provisioner"


def default_log_file(flow: Flow) -> str:
    """Transient per-flow log file under a per-uid directory in the system temp dir."""
    log_dir = f"{LOG_DIR_NAME}-{os.getuid()}"
    return os.path.join(tempfile.gettempdir(), log_dir, f"{flow.value}.log")


@dataclass(frozen=True)
class RunConfig:
    flow: Flow
    skip_gpu_check: bool = False
    use_tui: bool = False
    experimental: bool = False
    log_file: str = ""

    @classmethod
    def from_options(cls, flow: Flow, skip_gpu_check: bool = False, use_tui: bool = False,
                     experimental: bool = False, log_file: str | None = None) -> "RunConfig":
        return cls(
            flow=flow,
            skip_gpu_check=skip_gpu_check,
            use_tui=use_tui,
            experimental=experimental,
            log_file=log_file or default_log_file(flow),
        )

    def summary(self) -> list[str]:
        """Human-readable option listing."""
        return [
            f"Experimental packages: {'Enabled' if self.experimental else 'Disabled'}",
            f"GPU check: {'Disabled' if self.skip_gpu_check else 'Enabled'}",
        ]

    def with_overrides(self, presenter) -> "RunConfig":
        """One interactive pass over the toggles; returns a new config.

        Declining the first question keeps the current options.
        """
        presenter.report("Configuration Options", self.summary())
        if not presenter.confirm("Do you want to change any configuration options?",
                                 title="Configuration"):
            return self

        experimental = presenter.confirm("Enable experimental packages?",
                                         title="Configuration", default=self.experimental)
        skip_gpu_check = presenter.confirm("Skip GPU check?",
                                           title="Configuration", default=self.skip_gpu_check)
        return replace(self, experimental=experimental, skip_gpu_check=skip_gpu_check)
