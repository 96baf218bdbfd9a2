"""Post-install verification.

Each check returns a short success message or raises ``VerificationError``.
Whether a failed check blocks the run is decided by the step that runs it.
"""

import subprocess

from ..errors import VerificationError
from ..utils.logging import log_info, log_warn
from ..utils.system import command_exists, privileged, run_command

SMOKE_TEST_IMAGES = (
    "nvidia/cuda:12.2-base-ubuntu22.04",
    "nvidia/cuda:11.8-base-ubuntu22.04",
    "nvidia/cuda:12.1-base-ubuntu20.04",
    "nvidia/cuda:11.8-base-ubuntu20.04",
)
SMOKE_TEST_TIMEOUT = 30
# Seconds run_command waits beyond ``timeout`` before giving up on the child
KILL_GRACE = 10
MANUAL_SMOKE_TEST = "sudo docker run --rm --gpus all nvidia/cuda:<tag> nvidia-smi"


def parse_nvidia_smi(output: str) -> dict:
    """Driver and CUDA versions from the nvidia-smi banner"""
    info = {}
    for line in output.splitlines():
        if "Driver Version:" in line:
            info['driver'] = line.split("Driver Version:")[1].split()[0]
        if "CUDA Version:" in line:
            info['cuda'] = line.split("CUDA Version:")[1].split()[0]
    return info


def verify_driver() -> str:
    log_info("Verifying NVIDIA driver installation...")
    if not command_exists("nvidia-smi"):
        raise VerificationError("nvidia-smi command not found. Driver installation may be incomplete, "
                                "or a reboot may be required.")

    try:
        result = run_command("nvidia-smi")
    except subprocess.CalledProcessError as exc:
        raise VerificationError(
            "nvidia-smi failed; a reboot may be required for the driver to load") from exc

    versions = parse_nvidia_smi(result.stdout or "")
    if 'driver' in versions:
        return f"Driver {versions['driver']} (CUDA {versions.get('cuda', 'N/A')})"
    return "nvidia-smi is working"


def verify_toolkit() -> str:
    log_info("Verifying installation...")
    if not command_exists("nvidia-ctk"):
        raise VerificationError("nvidia-ctk command not found")

    try:
        version = run_command("nvidia-ctk --version", capture_output=True)
    except subprocess.CalledProcessError as exc:
        raise VerificationError("nvidia-ctk --version failed") from exc

    first_line = version.splitlines()[0] if version else "unknown version"
    return f"nvidia-ctk available: {first_line}"


def smoke_test_command(image: str, timeout: int = SMOKE_TEST_TIMEOUT) -> str:
    """``timeout`` signals sudo, which forwards to docker and on to the container."""
    return f"timeout {timeout} {privileged(f'docker run --rm --gpus all {image} nvidia-smi')}"


def verify_container_gpu_access(images=SMOKE_TEST_IMAGES, timeout=SMOKE_TEST_TIMEOUT) -> str:
    """Run ``nvidia-smi`` inside a CUDA container, trying each image in turn.

    Stops at the first image that works.
    """
    if not command_exists("docker"):
        raise VerificationError("Docker not installed - cannot test GPU access")

    log_info("Running Docker test...")
    for image in images:
        log_info(f"Testing with image: {image}")
        try:
            run_command(smoke_test_command(image, timeout),
                        capture_output=True, timeout=timeout + KILL_GRACE)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired):
            log_warn(f"Test failed with {image}")
            continue
        return f"Docker GPU access test passed ({image})"

    raise VerificationError(f"Docker GPU access test failed. Manual test: {MANUAL_SMOKE_TEST}")


def verify_docker() -> str:
    log_info("Verifying Docker installation...")
    try:
        docker_version = run_command(privileged("docker --version"), capture_output=True)
        compose_version = run_command(privileged("docker compose version"), capture_output=True)
    except (subprocess.CalledProcessError, OSError) as exc:
        raise VerificationError(f"Docker verification failed: {exc}") from exc
    return f"{docker_version}; {compose_version}"
