"""
Transformation runner contract.

A runner performs the opaque long-running transformation for one job and
reports back through three callbacks: zero or more progress reports with
non-decreasing percentages, then exactly one of on_done(output_reference)
or on_error(message). The base class enforces that contract so concrete
runners only implement `execute`.

Dependencies: asyncio (stdlib)
System role: Interface between the lifecycle manager and the heavy work
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from mediajobs.core.exceptions import MediaJobsError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], Awaitable[None]]
DoneCallback = Callable[[str], Awaitable[None]]
ErrorCallback = Callable[[str], Awaitable[None]]
ProgressReporter = Callable[[int], Awaitable[None]]


@dataclass
class RunHandle:
    """
    Handle for one runner invocation.

    Attributes:
        output_reference: Output locator reserved for this run (may not exist yet)
        task: Task driving the run; finishes after the terminal callback returns
    """

    output_reference: str
    task: asyncio.Task = field(repr=False)

    def cancel(self) -> bool:
        """Request best-effort cancellation. Persisted state is not retracted."""
        return self.task.cancel()

    async def wait(self) -> None:
        """Wait until the run finished (terminal callback invoked or cancelled)."""
        try:
            await asyncio.shield(self.task)
        except asyncio.CancelledError:
            if not self.task.cancelled():
                raise

    @property
    def done(self) -> bool:
        return self.task.done()


def error_message(exc: BaseException) -> str:
    """Human-readable failure message recorded on the job."""
    if isinstance(exc, MediaJobsError):
        return exc.message
    return str(exc) or type(exc).__name__


def threadsafe_reporter(
    report: ProgressReporter,
    loop: asyncio.AbstractEventLoop,
) -> Callable[[int], None]:
    """
    Wrap an async progress reporter for use from a worker thread.

    Each call blocks the worker until the report has been handled on the
    event loop, which keeps reports in production order.
    """

    def _report(percent: int) -> None:
        asyncio.run_coroutine_threadsafe(report(percent), loop).result()

    return _report


class TransformationRunner(ABC):
    """Base class for transformation runners."""

    output_suffix: str = ".mp4"

    def __init__(self, allocate_output: Callable[[str], str]) -> None:
        """
        Args:
            allocate_output: Returns a fresh output reference for a suffix
        """
        self._allocate_output = allocate_output

    def run(
        self,
        input_reference: str | None,
        options: dict[str, Any],
        on_progress: ProgressCallback,
        on_done: DoneCallback,
        on_error: ErrorCallback,
    ) -> RunHandle:
        """
        Start a transformation in the background.

        Must be called from a running event loop. Returns immediately.

        Args:
            input_reference: Locator of the input to transform
            options: Transformation options snapshot
            on_progress: Called with non-decreasing percentages before the outcome
            on_done: Called once with the output reference on success
            on_error: Called once with a message on failure

        Returns:
            RunHandle: Handle with the reserved output reference
        """
        output_reference = self._allocate_output(self.output_suffix)
        task = asyncio.create_task(
            self._drive(input_reference, options, output_reference, on_progress, on_done, on_error),
            name=f"runner:{output_reference}",
        )
        return RunHandle(output_reference=output_reference, task=task)

    async def _drive(
        self,
        input_reference: str | None,
        options: dict[str, Any],
        output_reference: str,
        on_progress: ProgressCallback,
        on_done: DoneCallback,
        on_error: ErrorCallback,
    ) -> None:
        last_percent = -1
        finished = False

        async def report(percent: int) -> None:
            nonlocal last_percent
            percent = max(0, min(100, int(percent)))
            if finished or percent <= last_percent:
                return
            last_percent = percent
            await on_progress(percent)

        try:
            result = await self.execute(input_reference, options, output_reference, report)
        except asyncio.CancelledError:
            logger.info("Runner cancelled", extra={"output_reference": output_reference})
            raise
        except Exception as e:
            finished = True
            logger.warning(
                "Transformation failed",
                extra={"output_reference": output_reference, "error": error_message(e)},
            )
            await on_error(error_message(e))
            return

        finished = True
        await on_done(result or output_reference)

    @abstractmethod
    async def execute(
        self,
        input_reference: str | None,
        options: dict[str, Any],
        output_reference: str,
        report_progress: ProgressReporter,
    ) -> str:
        """
        Perform the transformation.

        Args:
            input_reference: Locator of the input
            options: Transformation options snapshot
            output_reference: Where to write the result
            report_progress: Awaitable progress reporter (0-100)

        Returns:
            str: Output reference actually produced

        Raises:
            Exception: Any failure; converted to on_error(message)
        """
        ...
