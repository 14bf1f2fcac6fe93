"""
Simulated CPU-bound transformation runner.

Burns CPU in a worker thread for a fixed wall time (prime sieving and
matrix products in batches), reporting progress between batches, then
writes a small artifact describing the run. Useful for load testing the
service without a media toolchain installed.

Dependencies: asyncio, mediajobs.boundary.storage
System role: Default transformation runner for development
"""

import asyncio
import json
import logging
import random
import time
from typing import Any, Callable

from mediajobs.boundary.storage import LocalFileStorage
from mediajobs.core.runners.base import (
    ProgressReporter,
    TransformationRunner,
    threadsafe_reporter,
)

logger = logging.getLogger(__name__)


def count_primes(limit: int) -> int:
    """Count primes below limit by trial division."""
    count = 0
    for n in range(2, limit):
        is_prime = True
        i = 2
        while i * i <= n:
            if n % i == 0:
                is_prime = False
                break
            i += 1
        if is_prime:
            count += 1
    return count


def matrix_product_trace(size: int) -> float:
    """Multiply a random square matrix by itself and return the trace."""
    matrix = [[random.random() for _ in range(size)] for _ in range(size)]
    product = [
        [sum(matrix[i][k] * matrix[k][j] for k in range(size)) for j in range(size)]
        for i in range(size)
    ]
    return sum(product[i][i] for i in range(size))


class SimulatedTransformationRunner(TransformationRunner):
    """Runner that stands in for a transcoder with pure CPU work."""

    output_suffix = ".json"

    def __init__(
        self,
        storage: LocalFileStorage,
        duration_seconds: float = 30.0,
        progress_interval_seconds: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(storage.allocate_output)
        self.storage = storage
        self.duration_seconds = max(0.0, duration_seconds)
        self.progress_interval_seconds = max(0.01, progress_interval_seconds)
        self._clock = clock

    def _burn(self, report: Callable[[int], None]) -> dict[str, Any]:
        start = self._clock()
        deadline = start + self.duration_seconds
        next_report = start + self.progress_interval_seconds
        batches = 0
        primes = 0

        while self._clock() < deadline:
            primes += count_primes(2000 + random.randint(0, 2000))
            matrix_product_trace(24)
            batches += 1

            now = self._clock()
            if now >= next_report:
                elapsed = now - start
                report(int(elapsed / self.duration_seconds * 100))
                next_report = now + self.progress_interval_seconds

        return {
            "batches": batches,
            "primes_found": primes,
            "elapsed_seconds": round(self._clock() - start, 3),
        }

    async def execute(
        self,
        input_reference: str | None,
        options: dict[str, Any],
        output_reference: str,
        report_progress: ProgressReporter,
    ) -> str:
        loop = asyncio.get_running_loop()
        stats = await asyncio.to_thread(self._burn, threadsafe_reporter(report_progress, loop))

        artifact = {
            "input_reference": input_reference,
            "options": options,
            **stats,
        }
        path = self.storage.output_path(output_reference)
        await asyncio.to_thread(path.write_text, json.dumps(artifact, indent=2))

        logger.info(
            "Simulated transformation finished",
            extra={"output_reference": output_reference, "batches": stats["batches"]},
        )
        return output_reference
