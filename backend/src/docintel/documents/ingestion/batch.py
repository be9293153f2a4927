"""Per-record fan-out for Lambda event batches

One record's failure never stops its siblings: every record runs to
completion and the invocation reports how many succeeded, were skipped or
failed.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BatchResult:
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    failed_indices: List[int] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.succeeded + self.skipped + self.failed

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": list(self.errors),
        }


async def run_records(
    records: List[T],
    process: Callable[[T], Awaitable[Optional[object]]],
    stage: str,
) -> BatchResult:
    """
    Process every record concurrently and tally the outcomes.

    `process` returns None for a skipped record, any other value for a
    success, and raises for a failure.
    """
    outcomes = await asyncio.gather(*(process(record) for record in records), return_exceptions=True)

    result = BatchResult()
    for index, outcome in enumerate(outcomes):
        if isinstance(outcome, BaseException):
            result.failed += 1
            result.errors.append(str(outcome))
            result.failed_indices.append(index)
            logger.error(f"{stage}: record {index} failed: {outcome}", exc_info=outcome)
        elif outcome is None:
            result.skipped += 1
        else:
            result.succeeded += 1

    logger.info(
        f"{stage}: processed {result.total} records "
        f"(succeeded={result.succeeded}, skipped={result.skipped}, failed={result.failed})"
    )
    return result
