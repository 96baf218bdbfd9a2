"""Error taxonomy for provisioning runs.

Fatal errors unwind to the CLI's top-level handler, which reports them and
exits 1.  Non-fatal errors are caught by the executor, recorded as warnings
in the run report and never stop the run.
"""


class ProvisionError(Exception):
    """Base class for every error raised by a provisioning flow."""
    fatal = True
    exit_code = 1


# Fatal

class UnsupportedOSError(ProvisionError):
    """The host is not running Ubuntu."""


class PrivilegeDeniedError(ProvisionError):
    """Wrong effective user for this flow, or sudo was declined/refused."""


class HardwareNotDetectedError(ProvisionError):
    """No NVIDIA GPU was found and the operator chose not to continue."""


class DriverMissingError(ProvisionError):
    """The NVIDIA driver must be installed before the container toolkit."""


class RepositoryConfigError(ProvisionError):
    """Registering an APT repository or its signing key failed."""


class PackageListUpdateError(ProvisionError):
    """Refreshing the APT package lists failed."""


class PackageInstallError(ProvisionError):
    """Installing a required package failed."""


# Warnings

class RuntimeConfigError(ProvisionError):
    """Registering the NVIDIA runtime with a container engine failed."""
    fatal = False


class ModuleLoadError(ProvisionError):
    """A kernel module could not be loaded (usually resolved by a reboot)."""
    fatal = False


class ModuleUnloadError(ProvisionError):
    """A kernel module could not be unloaded (module busy)."""
    fatal = False


class BlacklistIOError(ProvisionError):
    """Reading or writing the modprobe blacklist file failed."""
    fatal = False


class VerificationError(ProvisionError):
    """A post-install check did not pass."""
    fatal = False


class RemovalError(ProvisionError):
    """A best-effort removal command did not complete."""
    fatal = False


class StepFailedError(ProvisionError):
    """A fatal executor step failed; no later step was run.

    Carries the step results recorded up to and including the failure.
    """

    def __init__(self, message, results=None, cause=None):
        super().__init__(message)
        self.results = list(results or [])
        self.cause = cause
