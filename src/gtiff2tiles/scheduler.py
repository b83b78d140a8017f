"""Wave-ordered dispatch of tile jobs over a bounded thread pool."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, Mapping, Sequence

from gtiff2tiles.errors import TileError
from gtiff2tiles.perf import PerfTracker
from gtiff2tiles.tiles.base import TileAlgorithm, TileJob, Wave
from gtiff2tiles.tiles.grid import TileCoordinate, TileGrid

LOGGER = logging.getLogger(__name__)

ProgressSink = Callable[[float], None]
JobWorker = Callable[[TileJob], Path]


@dataclass(frozen=True)
class TileOutcome:
    """Result of one finished tile job."""

    coordinate: TileCoordinate
    path: Path | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ProgressTracker:
    """Count finished jobs and report the completed fraction to a sink.

    The sink is called while holding the counter lock, so it never runs
    concurrently and always sees a non-decreasing sequence.
    """

    def __init__(self, total: int, sink: ProgressSink | None = None) -> None:
        if total < 0:
            raise ValueError("total must be >= 0")
        self.total = total
        self._sink = sink
        self._completed = 0
        self._lock = threading.Lock()

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    @property
    def fraction(self) -> float:
        with self._lock:
            return self._fraction()

    def _fraction(self) -> float:
        if self.total == 0:
            return 1.0
        return self._completed / self.total

    def start(self) -> None:
        """Report the initial fraction before any job finishes."""
        with self._lock:
            if self._sink is not None:
                self._sink(self._fraction())

    def advance(self) -> float:
        """Record one finished job and return the new fraction."""
        with self._lock:
            if self._completed >= self.total:
                raise RuntimeError("All jobs are already accounted for.")
            self._completed += 1
            fraction = self._fraction()
            if self._sink is not None:
                self._sink(fraction)
        return fraction


def plan_waves(algorithm: TileAlgorithm, grids: Mapping[int, TileGrid]) -> list[Wave]:
    """Return the algorithm's waves, checking each tile is scheduled once.

    Each zoom may appear in only one grid across all waves.
    """
    waves = algorithm.waves(grids)
    zooms: set[int] = set()
    for wave in waves:
        for grid in wave.grids:
            if grid.z in zooms:
                raise ValueError(f"Zoom {grid.z} scheduled more than once.")
            zooms.add(grid.z)
    return waves


def count_jobs(waves: Iterable[Wave]) -> int:
    """Return the total number of jobs across waves."""
    return sum(len(wave) for wave in waves)


class TileScheduler:
    """Run waves of jobs with at most ``threads`` jobs in flight.

    A wave is dispatched only after every job of the previous wave finished.
    Per-tile errors become failed outcomes; any other exception stops further
    dispatch, lets running jobs finish, and is re-raised.
    """

    def __init__(
        self,
        threads: int,
        *,
        progress: ProgressTracker | None = None,
        cancel_event: threading.Event | None = None,
        perf: PerfTracker | None = None,
    ) -> None:
        if threads < 1:
            raise ValueError("threads must be >= 1")
        self.threads = threads
        self._progress = progress
        self._cancel_event = cancel_event or threading.Event()
        self._perf = perf or PerfTracker(enabled=False)

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Stop dispatching new jobs; running jobs still finish."""
        self._cancel_event.set()

    def iter_outcomes(self, waves: Sequence[Wave], worker: JobWorker) -> Iterator[TileOutcome]:
        """Yield outcomes as jobs finish, wave by wave."""
        with ThreadPoolExecutor(
            max_workers=self.threads, thread_name_prefix="gtiff2tiles"
        ) as executor:
            for wave in waves:
                if self.cancelled:
                    LOGGER.info("Cancelled before %s", wave.label)
                    break
                LOGGER.info("Dispatching %s (%d tiles)", wave.label, len(wave))
                with self._perf.span(wave.label):
                    yield from self._run_wave(executor, wave, worker)

    def _run_wave(
        self,
        executor: ThreadPoolExecutor,
        wave: Wave,
        worker: JobWorker,
    ) -> Iterator[TileOutcome]:
        jobs = iter(wave)
        pending: dict[Future[Path], TileJob] = {}
        fatal: BaseException | None = None
        exhausted = False
        while True:
            while (
                not exhausted
                and fatal is None
                and not self.cancelled
                and len(pending) < self.threads
            ):
                job = next(jobs, None)
                if job is None:
                    exhausted = True
                    break
                pending[executor.submit(worker, job)] = job
            if not pending:
                break
            done, _ = wait(pending, return_when=FIRST_COMPLETED)
            for future in done:
                job = pending.pop(future)
                try:
                    path = future.result()
                except TileError as exc:
                    LOGGER.warning(
                        "Tile failed: %s", exc, extra={"tile": str(job.coordinate)}
                    )
                    outcome = TileOutcome(job.coordinate, error=str(exc))
                except Exception as exc:
                    if fatal is None:
                        LOGGER.error(
                            "Fatal error; draining running jobs: %s",
                            exc,
                            extra={"tile": str(job.coordinate)},
                        )
                        fatal = exc
                    continue
                else:
                    outcome = TileOutcome(job.coordinate, path=path)
                if self._progress is not None:
                    self._progress.advance()
                yield outcome
        if fatal is not None:
            raise fatal
