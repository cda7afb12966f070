"""
Batch runs over many videos.

Each job runs on its own: a failure is recorded as that job's outcome and
the remaining jobs still run. The report says which jobs succeeded, which
were skipped, and which failed at which stage.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from yt_transcript.shared import tprint as print, PipelineError

SUCCESS = "success"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class BatchOutcome:
    job_id: str
    status: str
    stage: Optional[str] = None
    error: Optional[BaseException] = None
    result: Any = None

    @property
    def message(self) -> str:
        return str(self.error) if self.error is not None else ""


class BatchError(Exception):
    """One or more jobs of a batch failed."""

    def __init__(self, failures: list[BatchOutcome]):
        self.failures = failures
        lines = [f"{len(failures)} job(s) failed:"]
        lines += [f"  {f.job_id} [{f.stage}]: {f.message}" for f in failures]
        super().__init__("\n".join(lines))


@dataclass
class BatchReport:
    outcomes: list[BatchOutcome] = field(default_factory=list)

    def _with_status(self, status: str) -> list[BatchOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def successes(self) -> list[BatchOutcome]:
        return self._with_status(SUCCESS)

    @property
    def skipped(self) -> list[BatchOutcome]:
        return self._with_status(SKIPPED)

    @property
    def failures(self) -> list[BatchOutcome]:
        return self._with_status(FAILED)

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        return (f"{len(self.successes)} succeeded, {len(self.failures)} failed, "
                f"{len(self.skipped)} skipped")

    def raise_for_failures(self) -> None:
        if self.failures:
            raise BatchError(self.failures)


def _stage_of(error: BaseException) -> str:
    if isinstance(error, PipelineError):
        return error.stage
    return "unknown"


def _run_job(job_id: str, job, fn: Callable, position: int, total: int) -> BatchOutcome:
    print(f"  [{position}/{total}] {job_id}...")
    try:
        result = fn(job)
    except Exception as e:
        stage = _stage_of(e)
        print(f"    FAILED {job_id} at {stage}: {e}")
        return BatchOutcome(job_id, FAILED, stage=stage, error=e)
    if getattr(result, "skipped", False):
        return BatchOutcome(job_id, SKIPPED, result=result)
    print(f"    done {job_id}")
    return BatchOutcome(job_id, SUCCESS, result=result)


def run_batch(jobs: Sequence, fn: Callable, max_workers: int = 1,
              job_id: Callable[[Any], str] = str) -> BatchReport:
    """Run fn over every job, isolating failures, and report outcomes in job order."""
    jobs = list(jobs)
    total = len(jobs)
    if not jobs:
        return BatchReport()
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, total))) as executor:
        futures = [
            executor.submit(_run_job, job_id(job), job, fn, i, total)
            for i, job in enumerate(jobs, 1)
        ]
        outcomes = [future.result() for future in futures]
    report = BatchReport(outcomes)
    print()
    print(f"Done: {report.summary()}")
    return report
