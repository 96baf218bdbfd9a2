"""Logging utilities for NVIDIA Provisioner

Console output is colored and printed directly.  Every message, and the
output of every external command, is also appended to the run's log file
so a failed step can be inspected after the terminal has scrolled away.
"""

import logging
import os
from contextlib import contextmanager

_file_logger = logging.getLogger("nvidia_provisioner")
_file_logger.propagate = False
_file_logger.setLevel(logging.DEBUG)
_file_logger.addHandler(logging.NullHandler())

_console_muted = False
_log_path: str | None = None


class Colors:
    """ANSI color codes for terminal output"""
    RESET = '\033[0m'
    BOLD = '\033[1m'
    RED = '\033[1;31m'
    GREEN = '\033[1;32m'
    YELLOW = '\033[1;33m'
    BLUE = '\033[1;34m'
    CYAN = '\033[1;36m'


def configure_log_file(path: str) -> str:
    """Send all log records to ``path`` (truncated at the start of a run).

    Returns:
        The path actually used.

    Raises:
        OSError: The file cannot be created; records are discarded until a
            later call succeeds.
    """
    global _log_path

    for handler in list(_file_logger.handlers):
        _file_logger.removeHandler(handler)
        handler.close()
    _log_path = None

    try:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    except OSError:
        _file_logger.addHandler(logging.NullHandler())
        raise
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s",
                                           datefmt="%Y-%m-%d %H:%M:%S"))
    _file_logger.addHandler(handler)
    _log_path = path
    return path


def get_log_path() -> str | None:
    """Return the active log file path, if one is configured."""
    return _log_path


@contextmanager
def muted_console():
    """Suppress console echo while another component owns the terminal."""
    global _console_muted
    previous = _console_muted
    _console_muted = True
    try:
        yield
    finally:
        _console_muted = previous


def _echo(text, end='\n'):
    if not _console_muted:
        print(text, end=end, flush=True)


def log_info(message):
    """Log info message in green"""
    _file_logger.info(message)
    _echo(f"{Colors.GREEN}[INFO]  {message}{Colors.RESET}")


def log_warn(message):
    """Log warning message in yellow"""
    _file_logger.warning(message)
    _echo(f"{Colors.YELLOW}[WARN]  {message}{Colors.RESET}")


def log_error(message):
    """Log error message in red"""
    _file_logger.error(message)
    _echo(f"{Colors.RED}[ERROR] {message}{Colors.RESET}")


def log_prompt(message):
    """Log prompt message in cyan"""
    print(f"{Colors.CYAN}[INPUT] {message}{Colors.RESET}", end='', flush=True)


def log_step(message):
    """Log step message in blue with newline before"""
    _file_logger.info(f"== {message}")
    _echo(f"\n{Colors.BLUE}[STEP]  {message}{Colors.RESET}")


def log_success(message):
    """Log success message in bold green"""
    _file_logger.info(f"OK {message}")
    _echo(f"{Colors.BOLD}{Colors.GREEN}✓ {message}{Colors.RESET}")


def log_output(output: str, echo: bool = True) -> None:
    """Record raw command output; echo it to the console unless muted."""
    if not output:
        return
    for line in output.rstrip("\n").splitlines():
        _file_logger.debug(f"  | {line}")
    if echo:
        _echo(output.rstrip("\n"))
