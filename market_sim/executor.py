"""
Batch Execution Module
======================
Interchangeable executors that run batches of trials.

    SequentialBatchExecutor    in-process loop, always available
    ProcessPoolBatchExecutor   one worker process per execution unit

Both return per-batch results in batch-index order, never completion order,
so a given seed always maps to the same output regardless of scheduling.
The implementation is chosen once by ``create_executor``; a pool that
cannot start on first dispatch, or breaks mid-dispatch, demotes itself to
the sequential path and replays the same batches with the same seeds.
"""

import logging
import math
import os
from abc import ABC, abstractmethod
from concurrent.futures import Future, ProcessPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from concurrent.futures.process import BrokenProcessPool
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from market_sim.exceptions import ConfigurationError, ExecutionUnitError

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────
PROBE_TIMEOUT_SECONDS: float = 30.0
BATCH_SEED_STRIDE: int = 1000


def default_worker_count() -> int:
    """One worker per core, leaving one core to the orchestrator."""
    return max(1, (os.cpu_count() or 2) - 1)


def _probe() -> bool:
    return True


# ─────────────────────────────────────────────────────────────
# Work Partitioning
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Batch:
    """Contiguous slice ``[start, start + size)`` of a run's trials."""

    index: int
    start: int
    size: int
    seed: int

    @property
    def stop(self) -> int:
        return self.start + self.size


def plan_batches(total: int, unit_count: int, seed: int) -> List[Batch]:
    """
    Partition ``total`` trials into at most ``unit_count`` batches.

    Batch size is ``ceil(total / unit_count)``; the last batch may be
    smaller and no batch is empty.  Batch ``i`` is seeded with
    ``seed + i * 1000``.

    Parameters
    ----------
    total : int
        Number of trials (>= 1).
    unit_count : int
        Number of execution units (>= 1).
    seed : int
        Run seed.

    Returns
    -------
    list of Batch
        Sizes sum exactly to ``total``.
    """
    if total < 1:
        raise ConfigurationError(f"total must be >= 1, got {total}")
    if unit_count < 1:
        raise ConfigurationError(f"unit_count must be >= 1, got {unit_count}")

    batch_size = math.ceil(total / unit_count)
    batches: List[Batch] = []
    start = 0
    while start < total:
        size = min(batch_size, total - start)
        index = len(batches)
        batches.append(Batch(index, start, size, seed + index * BATCH_SEED_STRIDE))
        start += size
    return batches


class BatchExecutor(ABC):
    """
    Executes ``fn(batch, *args)`` for every batch and joins the results.

    Parameters
    ----------
    unit_count : int
        Number of execution units; also the number of batches the runner
        partitions a run into.
    """

    kind: str = "base"

    def __init__(self, unit_count: int = 1) -> None:
        if unit_count < 1:
            raise ValueError(f"unit_count must be >= 1, got {unit_count}")
        self._unit_count = int(unit_count)

    @property
    def unit_count(self) -> int:
        return self._unit_count

    def init(self) -> "BatchExecutor":
        return self

    @abstractmethod
    def map_batches(
        self,
        fn: Callable[..., Any],
        batches: Sequence[Any],
        *args: Any,
    ) -> List[Any]:
        """Run ``fn`` on each batch; results are ordered like ``batches``."""

    def destroy(self) -> None:
        """Release execution units. Safe to call repeatedly."""

    def stats(self) -> Dict[str, object]:
        return {"kind": self.kind, "unit_count": self.unit_count}

    def __enter__(self) -> "BatchExecutor":
        return self.init()

    def __exit__(self, *exc_info: object) -> None:
        self.destroy()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(unit_count={self.unit_count})"


class SequentialBatchExecutor(BatchExecutor):
    """Runs every batch in the calling thread."""

    kind = "sequential"

    def map_batches(self, fn, batches, *args):
        return [fn(batch, *args) for batch in batches]


class ProcessPoolBatchExecutor(BatchExecutor):
    """
    Process-pool executor created once and reused across runs.

    Parameters
    ----------
    max_workers : int, optional
        Worker processes (default: cpu_count − 1).
    mp_context : multiprocessing context, optional
        Start method override passed to ``ProcessPoolExecutor``.
    """

    kind = "process_pool"

    def __init__(self, max_workers: Optional[int] = None, mp_context: Any = None) -> None:
        super().__init__(max_workers or default_worker_count())
        self._mp_context = mp_context
        self._pool: Optional[ProcessPoolExecutor] = None
        self._fallback: Optional[SequentialBatchExecutor] = None

    @property
    def demoted(self) -> bool:
        return self._fallback is not None

    def init(self) -> "ProcessPoolBatchExecutor":
        """
        Start the worker processes and wait for one round-trip.

        Raises
        ------
        ExecutionUnitError
            If the pool cannot be created or the probe task fails.
        """
        if self._pool is not None or self.demoted:
            return self

        try:
            pool = ProcessPoolExecutor(max_workers=self.unit_count, mp_context=self._mp_context)
        except (OSError, ValueError, NotImplementedError, ImportError, RuntimeError) as exc:
            raise ExecutionUnitError(
                f"Could not create {self.unit_count} worker processes: {exc}"
            ) from exc

        try:
            if not pool.submit(_probe).result(timeout=PROBE_TIMEOUT_SECONDS):
                raise ExecutionUnitError("Worker probe returned a falsy result")
        except (OSError, RuntimeError, FuturesTimeoutError) as exc:
            pool.shutdown(wait=False, cancel_futures=True)
            raise ExecutionUnitError(f"Worker processes failed to start: {exc}") from exc

        self._pool = pool
        logger.debug("Started process pool with %d workers", self.unit_count)
        return self

    def map_batches(self, fn, batches, *args):
        if self.demoted:
            return self._fallback.map_batches(fn, batches, *args)
        if self._pool is None:
            try:
                self.init()
            except ExecutionUnitError as exc:
                self._demote(exc)
                return self._fallback.map_batches(fn, batches, *args)

        futures: List[Future] = []
        try:
            futures = [self._pool.submit(fn, batch, *args) for batch in batches]
            # Join barrier: wait for every batch, in index order.
            return [future.result() for future in futures]
        except BrokenProcessPool as exc:
            self._demote(exc)
            return self._fallback.map_batches(fn, batches, *args)
        except Exception:
            for future in futures:
                future.cancel()
            raise

    def _demote(self, cause: BaseException) -> None:
        logger.warning(
            "Process pool unavailable (%s); falling back to sequential execution with %d batches",
            cause, self.unit_count,
        )
        if self._pool is not None:
            self._pool.shutdown(wait=False, cancel_futures=True)
            self._pool = None
        self._fallback = SequentialBatchExecutor(self.unit_count)

    def destroy(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True, cancel_futures=True)
            self._pool = None

    def stats(self) -> Dict[str, object]:
        return {
            "kind": self.kind,
            "unit_count": self.unit_count,
            "started": self._pool is not None,
            "demoted": self.demoted,
        }


def create_executor(parallel: bool = True, max_workers: Optional[int] = None) -> BatchExecutor:
    """
    Select the executor implementation once, at startup.

    Parameters
    ----------
    parallel : bool
        Try a process pool first when True.
    max_workers : int, optional
        Execution units; the sequential fallback keeps the same count so
        both paths partition a run identically.

    Returns
    -------
    BatchExecutor
        A started ``ProcessPoolBatchExecutor``, or a
        ``SequentialBatchExecutor`` when workers are unavailable.
    """
    if not parallel:
        return SequentialBatchExecutor(max_workers or 1)

    pool = ProcessPoolBatchExecutor(max_workers)
    try:
        return pool.init()
    except ExecutionUnitError as exc:
        logger.warning("%s; using sequential execution", exc)
        return SequentialBatchExecutor(pool.unit_count)


def distribute(executor: BatchExecutor, total: int, seed: int, config: Any, model: Any = None) -> list:
    """
    Plan, dispatch and join one run's trials.

    Returns
    -------
    list of TrialResult
        Exactly ``total`` results, concatenated in batch order.
    """
    from market_sim.runner import run_batch

    batches = plan_batches(total, executor.unit_count, seed)
    per_batch = executor.map_batches(run_batch, batches, config, model)
    return [result for batch_results in per_batch for result in batch_results]
