"""
Per-step outcome tracking for a pipeline run.

Every step, critical or not, leaves exactly one ``StepResult`` in the run's
``PipelineResult``. The exit code is derived from those records: 1 if any
step ended in ``error``, else 0 (warnings do not fail the run).
"""

import asyncio
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from parlwatch.errors import StepFailedError, StoreAuthError

SUCCESS = "success"
WARNING = "warning"
ERROR = "error"

# Per-row error messages kept for the summary
MAX_SAMPLED_ERRORS = 5

_ICONS = {SUCCESS: "OK  ", WARNING: "WARN", ERROR: "FAIL"}


@dataclass
class StepReport:
    """Row-level counters a transformer returns for its step."""

    processed: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def record_failure(self, message: str, count: int = 1) -> None:
        self.failed += count
        if len(self.errors) < MAX_SAMPLED_ERRORS:
            self.errors.append(message)

    @property
    def status(self) -> str:
        if self.failed == 0:
            return SUCCESS
        if self.processed > 0 and self.failed >= self.processed:
            return ERROR
        return WARNING


@dataclass
class StepResult:
    name: str
    status: str
    processed: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    duration: float = 0.0


class PipelineResult:
    """Collects step results; safe to append from concurrent branches."""

    def __init__(self) -> None:
        self._steps: list[StepResult] = []
        # Set when a critical step (or a credential failure) stopped the run
        self.aborted = False
        self._lock = threading.Lock()
        self._started = time.monotonic()

    def add_step(self, step: StepResult) -> None:
        with self._lock:
            self._steps.append(step)

    @property
    def steps(self) -> list[StepResult]:
        with self._lock:
            return list(self._steps)

    def step(self, name: str) -> StepResult | None:
        return next((s for s in self.steps if s.name == name), None)

    @property
    def has_errors(self) -> bool:
        return any(s.status == ERROR for s in self.steps)

    @property
    def has_warnings(self) -> bool:
        return any(s.status == WARNING for s in self.steps)

    def exit_code(self) -> int:
        return 1 if self.has_errors or self.aborted else 0

    def print_summary(self) -> None:
        steps = self.steps
        total_processed = sum(s.processed for s in steps)
        total_failed = sum(s.failed for s in steps)
        elapsed = time.monotonic() - self._started

        print("\n" + "=" * 60)
        print("PIPELINE SUMMARY")
        print("=" * 60)
        for s in steps:
            counts = f"{s.processed - s.failed}/{s.processed}" if s.processed else "-"
            print(f"  [{_ICONS.get(s.status, '?')}] {s.name:<28} {counts:>12}  ({s.duration:.1f}s)")
            for err in s.errors[:3]:
                print(f"         - {err}")
            if len(s.errors) > 3:
                print(f"         ... and {len(s.errors) - 3} more errors")
        print("-" * 60)
        print(f"  Steps: {len(steps)}  Processed: {total_processed}  Failed: {total_failed}")
        print(f"  Duration: {elapsed:.1f}s")
        if self.has_errors:
            print("Pipeline completed with errors")
        elif self.has_warnings:
            print("Pipeline completed with warnings")
        else:
            print("Pipeline completed successfully")


def _report_of(value: Any) -> StepReport | None:
    if isinstance(value, StepReport):
        return value
    report = getattr(value, "report", None)
    return report if isinstance(report, StepReport) else None


async def run_step(
    result: PipelineResult,
    name: str,
    fn: Callable[[], Awaitable[Any]],
    *,
    critical: bool,
) -> Any:
    """
    Await ``fn()`` and record its outcome as one step.

    A returned StepReport (or an object carrying ``.report``) sets the step's
    counters and status. An exception is recorded as ``error`` and re-raised
    for a critical step, or recorded as ``warning`` and swallowed (returning
    None) for a non-critical one. A step whose every row failed likewise
    aborts the run when critical and is downgraded to ``warning`` otherwise.
    Store authentication failures are re-raised regardless.
    """
    started = time.monotonic()
    try:
        value = await fn()
    except StoreAuthError as e:
        result.add_step(StepResult(
            name=name, status=ERROR, errors=[str(e)],
            duration=time.monotonic() - started,
        ))
        raise
    except Exception as e:
        status = ERROR if critical else WARNING
        result.add_step(StepResult(
            name=name, status=status, errors=[f"{type(e).__name__}: {e}"],
            duration=time.monotonic() - started,
        ))
        if critical:
            print(f"  FAILED [{name}]: {e}")
            raise
        print(f"  WARNING [{name}] failed (non-critical): {e}")
        return None

    report = _report_of(value)
    if report is None:
        step = StepResult(name=name, status=SUCCESS)
    else:
        step = StepResult(
            name=name,
            status=report.status,
            processed=report.processed,
            failed=report.failed,
            errors=list(report.errors),
        )
    step.duration = time.monotonic() - started
    if not critical and step.status == ERROR:
        step.status = WARNING
    result.add_step(step)
    if critical and step.status == ERROR:
        print(f"  FAILED [{name}]: all {step.failed} rows failed")
        raise StepFailedError(f"{name}: all {step.failed} rows failed")
    return value


async def gather_steps(
    result: PipelineResult,
    steps: dict[str, Callable[[], Awaitable[Any]]],
    *,
    critical: bool,
) -> dict[str, Any]:
    """Run independent steps concurrently; re-raise the first failure after all settle."""
    names = list(steps)
    outcomes = await asyncio.gather(
        *(run_step(result, n, steps[n], critical=critical) for n in names),
        return_exceptions=True,
    )
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            raise outcome
    return dict(zip(names, outcomes))
