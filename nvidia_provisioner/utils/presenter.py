"""Presentation layer shared by every flow.

Flows talk to a ``Presenter`` only.  ``CliPresenter`` prints colored log
lines and reads answers from stdin; ``TuiPresenter`` draws curses dialogs
and a progress gauge.  Both write everything to the run log.
"""

import curses
import sys
import textwrap
import threading
import time
from abc import ABC, abstractmethod

from .logging import (
    log_info, log_warn, log_error, log_step, log_success, muted_console,
)
from .prompts import prompt_yes_no


class Presenter(ABC):
    """Capability interface the core flows depend on."""

    @abstractmethod
    def info(self, message: str) -> None: ...

    @abstractmethod
    def success(self, message: str) -> None: ...

    @abstractmethod
    def warning(self, message: str) -> None: ...

    @abstractmethod
    def error(self, message: str) -> None: ...

    @abstractmethod
    def step(self, title: str) -> None: ...

    @abstractmethod
    def confirm(self, prompt: str, title: str = "Confirm", default: bool = False) -> bool: ...

    @abstractmethod
    def progress(self, step: int, total: int, text: str) -> None: ...

    @abstractmethod
    def report(self, title: str, lines: list[str]) -> None: ...

    def run_with_progress(self, title: str, text: str, action):
        """Run ``action`` and return its result, blocking until it finishes."""
        return action()


class CliPresenter(Presenter):
    """Plain terminal output using the colored log functions."""

    def info(self, message):
        log_info(message)

    def success(self, message):
        log_success(message)

    def warning(self, message):
        log_warn(message)

    def error(self, message):
        log_error(message)

    def step(self, title):
        log_step(title)

    def confirm(self, prompt, title="Confirm", default=False):
        return prompt_yes_no(prompt, default=default)

    def progress(self, step, total, text):
        log_step(f"[{step}/{total}] {text}")

    def report(self, title, lines):
        print(f"\n=== {title} ===")
        for line in lines:
            print(line)
        print()


# Dialog geometry (matches the whiptail boxes operators are used to)
_DIALOG_WIDTH = 70
_GAUGE_CAP = 90
_GAUGE_STEP = 10


def _hide_cursor():
    try:
        curses.curs_set(0)
    except curses.error:
        pass


def _draw_box(stdscr, title, body_lines, footer=""):
    """Draw a bordered box centered on the screen. Returns (top, left, width)."""
    max_y, max_x = stdscr.getmaxyx()
    width = max(20, min(_DIALOG_WIDTH, max_x - 2))
    inner = width - 4
    wrapped: list[str] = []
    for line in body_lines:
        wrapped.extend(textwrap.wrap(line, inner) or [""])
    height = min(len(wrapped) + (5 if footer else 4), max_y - 1)
    top = max(0, (max_y - height) // 2)
    left = max(0, (max_x - width) // 2)

    stdscr.erase()
    stdscr.addnstr(top, left, "+" + "-" * (width - 2) + "+", width)
    for row in range(1, height - 1):
        stdscr.addnstr(top + row, left, "|" + " " * (width - 2) + "|", width)
    stdscr.addnstr(top + height - 1, left, "+" + "-" * (width - 2) + "+", width)
    stdscr.addnstr(top, left + 2, f" {title} ", inner, curses.A_BOLD)

    for idx, line in enumerate(wrapped[:max(0, height - (4 if footer else 3))]):
        stdscr.addnstr(top + 1 + idx, left + 2, line, inner)
    if footer:
        stdscr.addnstr(top + height - 2, left + 2, footer, inner, curses.A_REVERSE)
    return top, left, width


class TuiPresenter(Presenter):
    """curses dialogs: message boxes, yes/no questions and a progress gauge.

    Informational messages only go to the log file so the screen stays on
    the current dialog; warnings and errors are shown as message boxes.
    """

    def __init__(self, poll_interval: float = 1.0):
        self.poll_interval = poll_interval
        self._fallback = CliPresenter()

    # -- message boxes ----------------------------------------------------

    def _message_box(self, title, message):
        def _show(stdscr):
            _hide_cursor()
            _draw_box(stdscr, title, message.split("\n"), footer="< OK >")
            stdscr.refresh()
            while stdscr.getch() not in (curses.KEY_ENTER, 10, 13, ord(' '), ord('q'), 27):
                pass

        try:
            curses.wrapper(_show)
        except curses.error as exc:
            self._fallback.warning(f"Interactive dialog unavailable ({exc}), using text output")
            self._fallback.info(f"{title}: {message}")

    def info(self, message):
        with muted_console():
            log_info(message)

    def success(self, message):
        with muted_console():
            log_success(message)

    def warning(self, message):
        with muted_console():
            log_warn(message)
        self._message_box("Warning", message)

    def error(self, message):
        with muted_console():
            log_error(message)
        self._message_box("Error", message)

    def step(self, title):
        with muted_console():
            log_step(title)

    def report(self, title, lines):
        with muted_console():
            for line in lines:
                log_info(f"{title}: {line}")
        self._message_box(title, "\n".join(lines))

    # -- questions --------------------------------------------------------

    def confirm(self, prompt, title="Confirm", default=False):
        def _ask(stdscr):
            _hide_cursor()
            choice = 0 if default else 1  # 0 = Yes, 1 = No
            while True:
                yes = "< Yes >" if choice != 0 else "[ Yes ]"
                no = "< No >" if choice != 1 else "[ No ]"
                _draw_box(stdscr, title, prompt.split("\n"), footer=f"{yes}   {no}")
                stdscr.refresh()
                key = stdscr.getch()
                if key in (curses.KEY_LEFT, curses.KEY_RIGHT, 9):
                    choice = 1 - choice
                elif key in (ord('y'), ord('Y')):
                    return True
                elif key in (ord('n'), ord('N'), 27):
                    return False
                elif key in (curses.KEY_ENTER, 10, 13):
                    return choice == 0

        with muted_console():
            log_info(f"Question: {prompt}")
        try:
            answer = curses.wrapper(_ask)
        except curses.error as exc:
            self._fallback.warning(f"Interactive dialog unavailable ({exc}), using text prompt")
            answer = self._fallback.confirm(prompt, title, default)
        with muted_console():
            log_info(f"Answer: {'yes' if answer else 'no'}")
        return answer

    # -- progress ---------------------------------------------------------

    @staticmethod
    def _draw_gauge(stdscr, title, text, percent):
        top, left, width = _draw_box(stdscr, title, [text, ""])
        bar_width = width - 12
        filled = bar_width * percent // 100
        bar = "#" * filled + "." * (bar_width - filled)
        stdscr.addnstr(top + 2, left + 2, f"[{bar}] {percent:3d}%", width - 4)
        stdscr.refresh()

    def progress(self, step, total, text):
        percent = step * 100 // total if total else 100
        with muted_console():
            log_step(f"[{step}/{total}] {text}")
        try:
            curses.wrapper(lambda stdscr: self._draw_gauge(stdscr, "Progress", text, percent))
        except curses.error:
            pass

    def _animate(self, stdscr, title, text, worker):
        _hide_cursor()
        percent = 0
        while worker.is_alive():
            percent = min(percent + _GAUGE_STEP, _GAUGE_CAP)
            self._draw_gauge(stdscr, title, text, percent)
            worker.join(self.poll_interval)
        self._draw_gauge(stdscr, title, text, 100)
        time.sleep(min(self.poll_interval, 0.5))

    def run_with_progress(self, title, text, action):
        """Run ``action`` in the background while a gauge animates.

        The percentage is cosmetic.  This call returns only after the action
        has finished, and re-raises whatever the action raised.
        """
        outcome: dict = {}

        def _target():
            try:
                outcome["value"] = action()
            except BaseException as exc:
                outcome["error"] = exc

        worker = threading.Thread(target=_target, name=f"step: {title}", daemon=True)
        with muted_console():
            worker.start()
            try:
                curses.wrapper(self._animate, title, text, worker)
            except curses.error:
                pass
            worker.join()

        if "error" in outcome:
            raise outcome["error"]
        return outcome.get("value")


def create_presenter(use_tui: bool) -> Presenter:
    """Pick the presenter for this run.

    TUI mode needs an interactive terminal; otherwise fall back to CLI output.
    """
    if use_tui:
        if sys.stdin.isatty() and sys.stdout.isatty():
            return TuiPresenter()
        log_warn("TUI mode needs an interactive terminal, using text output")
    return CliPresenter()
