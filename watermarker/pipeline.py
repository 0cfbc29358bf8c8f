"""Concurrent batch execution: discovery, job building, fault-isolated runs."""

import logging
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

from PIL import Image

from watermarker.config import BatchConfig
from watermarker.discovery import DiscoveryFailure, discover
from watermarker.errors import ConfigurationError, JobError
from watermarker.imaging import load_watermark, watermark_image
from watermarker.jobs import Job, build_job

logger = logging.getLogger(__name__)

CANCELLED_REASON = "cancelled"


class JobStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class Success:
    output_path: Path
    size: Tuple[int, int]


@dataclass(frozen=True)
class Failure:
    reason: str


@dataclass(frozen=True)
class JobResult:
    source_path: Path
    outcome: Union[Success, Failure]

    @property
    def status(self) -> JobStatus:
        if isinstance(self.outcome, Success):
            return JobStatus.SUCCEEDED
        return JobStatus.FAILED

    @property
    def ok(self) -> bool:
        return self.status is JobStatus.SUCCEEDED


@dataclass
class BatchReport:
    results: List[JobResult] = field(default_factory=list)
    discovery_failures: List[DiscoveryFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        job_failures = sum(1 for r in self.results if not r.ok)
        return job_failures + len(self.discovery_failures)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def summary(self) -> str:
        return f"{self.succeeded} succeeded, {self.failed} failed"


ResultCallback = Callable[[JobResult], None]


def run_job(job: Job, cancel: Optional[threading.Event] = None) -> JobResult:
    """Run a single job, turning any failure into a Failure outcome."""
    if cancel is not None and cancel.is_set():
        return JobResult(job.source_path, Failure(CANCELLED_REASON))

    logger.debug("%s: %s -> %s", JobStatus.RUNNING.value, job.source_path, job.output_path)
    try:
        output_path, size = watermark_image(job)
    except Exception as e:
        logger.debug("Error processing image %s: %s", job.source_path, e)
        return JobResult(job.source_path, Failure(str(e) or type(e).__name__))

    logger.info("Watermarked image saved to %s", output_path)
    return JobResult(job.source_path, Success(output_path, size))


def run_jobs(
    jobs: Sequence[Job],
    workers: Optional[int] = None,
    cancel: Optional[threading.Event] = None,
    on_result: Optional[ResultCallback] = None,
) -> List[JobResult]:
    """Run every job on a bounded thread pool and wait for all of them.

    Exactly one result is returned per job, in completion order. ``on_result``
    is invoked on the calling thread as each job finishes.
    """
    results: List[JobResult] = []
    if not jobs:
        return results

    if cancel is None:
        cancel = threading.Event()

    def collect(future, job: Job) -> None:
        try:
            result = future.result()
        except Exception as e:
            # run_job already converts job errors; this covers executor failures
            logger.debug("Error processing image %s: %s", job.source_path, e)
            result = JobResult(job.source_path, Failure(str(e)))
        results.append(result)
        if on_result is not None:
            on_result(result)

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="watermark") as executor:
        pending = {executor.submit(run_job, job, cancel): job for job in jobs}
        while pending:
            try:
                for future in as_completed(list(pending)):
                    collect(future, pending.pop(future))
            except KeyboardInterrupt:
                logger.warning("Interrupted, cancelling jobs that have not started")
                cancel.set()

    return results


def build_jobs(
    config: BatchConfig, watermark: Image.Image
) -> Tuple[List[Job], List[JobResult], List[DiscoveryFailure]]:
    """Discover source files and build their jobs.

    Returns the jobs, results for files whose job could not be built, and
    inputs that could not be discovered.
    """
    sources, discovery_failures = discover(config.input_paths, recursive=config.recursive)

    jobs: List[Job] = []
    build_failures: List[JobResult] = []
    for source in sources:
        try:
            jobs.append(build_job(source.path, config, watermark, base_dir=source.base_dir))
        except JobError as e:
            logger.debug("Error processing image %s: %s", source.path, e)
            build_failures.append(JobResult(source.path, Failure(str(e))))

    return jobs, build_failures, discovery_failures


def warn_on_collisions(jobs: Sequence[Job]) -> List[Path]:
    """Log output paths targeted by more than one job; the last writer wins."""
    counts = Counter(job.output_path for job in jobs)
    collisions = [path for path, count in counts.items() if count > 1]
    for path in collisions:
        sources = ", ".join(str(job.source_path) for job in jobs if job.output_path == path)
        logger.warning("Output %s is written by several inputs (%s); last writer wins", path, sources)
    return collisions


def prepare_target_dir(target_dir: Path) -> None:
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(f"Failed to create output directory {target_dir}: {e}") from e


def run_batch(
    config: BatchConfig,
    cancel: Optional[threading.Event] = None,
    on_result: Optional[ResultCallback] = None,
    on_start: Optional[Callable[[int], None]] = None,
) -> BatchReport:
    """Watermark every image reachable from ``config.input_paths``.

    Raises ConfigurationError before any job runs if the output directory
    cannot be created or the watermark cannot be decoded. Per-input and
    per-job failures are collected in the returned report.
    """
    prepare_target_dir(config.target_dir)
    watermark = load_watermark(config.watermark_path)
    logger.debug("Loaded watermark %s (%dx%d)", config.watermark_path, *watermark.size)

    jobs, build_failures, discovery_failures = build_jobs(config, watermark)
    warn_on_collisions(jobs)

    if on_start is not None:
        on_start(len(jobs))

    results = list(build_failures)
    results.extend(run_jobs(jobs, workers=config.workers, cancel=cancel, on_result=on_result))

    return BatchReport(results=results, discovery_failures=discovery_failures)
