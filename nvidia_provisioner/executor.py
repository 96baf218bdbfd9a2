"""Ordered execution of mutation steps.

Each step is independently failable.  Whether a failure stops the run is a
property of the step, not of the error: a fatal step that fails ends the
run immediately, a warning step that fails is recorded and the next step
runs anyway.
"""

import subprocess
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

from .errors import ProvisionError, StepFailedError
from .models import StepResult, StepStatus

StepOutcome = Union[None, str, StepResult]

# Exceptions a step action may raise that count as a step failure.  Anything
# else is a bug and propagates to the top-level handler.
_STEP_FAILURES = (
    subprocess.CalledProcessError,
    subprocess.TimeoutExpired,
    OSError,
    ProvisionError,
)


@dataclass(frozen=True)
class Step:
    name: str
    action: Callable[[], StepOutcome]
    fatal: bool = False
    error: type = ProvisionError
    description: str = ""


@dataclass
class RunReport:
    """Audit trail of one run, in execution order."""
    results: list[StepResult] = field(default_factory=list)

    def add(self, result: StepResult) -> None:
        self.results.append(result)

    def extend(self, other: "RunReport") -> None:
        self.results.extend(other.results)

    @property
    def warnings(self) -> list[StepResult]:
        return [r for r in self.results if r.status is StepStatus.WARNING]

    @property
    def has_fatal(self) -> bool:
        return any(r.status is StepStatus.FATAL for r in self.results)

    def step_names(self) -> list[str]:
        return [r.step_name for r in self.results]

    def summary_lines(self) -> list[str]:
        marks = {StepStatus.SUCCESS: "✓", StepStatus.WARNING: "⚠", StepStatus.FATAL: "✗"}
        lines = []
        for result in self.results:
            line = f"{marks[result.status]} {result.step_name}"
            if result.message:
                line += f": {result.message}"
            lines.append(line)
        return lines


def describe_failure(exc: BaseException) -> str:
    """Short operator-facing description of why a step failed."""
    if isinstance(exc, subprocess.CalledProcessError):
        return f"command exited with {exc.returncode}: {exc.cmd}"
    if isinstance(exc, subprocess.TimeoutExpired):
        return f"command timed out after {exc.timeout}s: {exc.cmd}"
    return str(exc) or type(exc).__name__


class Executor:
    """Runs steps in order and collects a ``RunReport``."""

    def __init__(self, presenter, report: Optional[RunReport] = None):
        self.presenter = presenter
        self.report = report if report is not None else RunReport()

    def _result_for(self, step: Step, outcome: StepOutcome) -> StepResult:
        if isinstance(outcome, StepResult):
            return outcome
        return StepResult(step.name, StepStatus.SUCCESS, outcome or "")

    def _result_for_failure(self, step: Step, exc: BaseException) -> StepResult:
        status = StepStatus.FATAL if step.fatal else StepStatus.WARNING
        return StepResult(step.name, status, describe_failure(exc))

    def _announce(self, result: StepResult) -> None:
        text = f"{result.step_name}: {result.message}" if result.message else result.step_name
        if result.status is StepStatus.SUCCESS:
            self.presenter.success(text)
        elif result.status is StepStatus.WARNING:
            self.presenter.warning(text)
        else:
            self.presenter.error(text)

    def run(self, steps: list[Step]) -> RunReport:
        """Execute ``steps`` in order.

        Raises:
            StepFailedError: when a fatal step fails; later steps are not run.
        """
        total = len(steps)
        for index, step in enumerate(steps, 1):
            self.presenter.progress(index, total, step.name)
            cause = None
            try:
                outcome = self.presenter.run_with_progress(
                    step.name, step.description or step.name, step.action)
            except _STEP_FAILURES as exc:
                cause = exc
                result = self._result_for_failure(step, exc)
            else:
                result = self._result_for(step, outcome)

            self.report.add(result)
            self._announce(result)

            if result.status is StepStatus.FATAL:
                error = cause if isinstance(cause, ProvisionError) else step.error(result.message)
                raise StepFailedError(f"{step.name} failed: {result.message}",
                                      self.report.results, cause=error)

        return self.report
