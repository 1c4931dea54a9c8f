"""
=============================================================================
WORKER THREAD POOL
=============================================================================

Runs one task per accepted connection, each on its own thread.

=============================================================================
SHAPE
=============================================================================

    accept thread                    task queue                 workers
    ─────────────                    ──────────                 ───────
    submit(serve, conn) ─────►  ┌──┬──┬──┬──┐  ─────►  Worker-0  serve(conn A)
                                │  │  │  │  │  ─────►  Worker-1  serve(conn B)
                                └──┴──┴──┴──┘  ─────►  Worker-2  (idle)

    min_workers threads start with the pool. A connection task holds its
    worker for as long as the client stays connected, so every submit()
    reserves an idle worker and starts a new thread when none is free.
    With max_workers=None there is no ceiling: many quiet keep-alive
    clients cost that many parked threads and never delay the next one.

    Workers above min_workers that stay idle for idle_timeout seconds
    exit, so a burst does not leave its threads behind.

    With a ceiling set, a task that finds no free worker waits in the
    queue, and a full queue makes submit() return False (the server
    answers 503).

=============================================================================
IDLE ACCOUNTING
=============================================================================

    _idle counts workers that are neither running a task nor promised
    to one. It changes only under _lock:

        submit()          _idle -= 1, or add a worker when _idle == 0,
                          or _backlog += 1 when at max_workers
        task finished     _backlog -= 1 if a queued task is waiting,
                          else _idle += 1
        worker retires    _idle -= 1 (only while _idle > 0)

    A worker that has just taken a task may still report IDLE, so
    Worker.state is only used for stats, never for this decision.

=============================================================================
STOPPING: POISON PILLS
=============================================================================

shutdown() puts one None on the queue per worker. A worker that takes a
None exits its loop. Tasks already running are never interrupted here;
the server makes them finish (or aborts their sockets) before it stops
the pool.

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """A deferred call: func(*args, **kwargs)."""
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Pulls tasks off the shared queue until it receives a poison pill or
    the pool lets it retire.

    Exceptions raised by a task are logged and counted; the worker keeps
    running.
    """

    def __init__(self, pool: "ThreadPool", worker_id: int):
        super().__init__(name=f"staticserve-worker-{worker_id}", daemon=True)
        self.pool = pool
        self.task_queue = pool._task_queue
        self.worker_id = worker_id

        self.state = WorkerState.IDLE
        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while True:
            try:
                task = self.task_queue.get(timeout=self.pool.idle_timeout)
            except queue.Empty:
                if self.pool._retire(self):
                    break
                continue

            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()

        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}")
            self.tasks_failed += 1
        finally:
            self.state = WorkerState.IDLE
            self.pool._task_finished()


class ThreadPool:
    """
    Thread pool for connection tasks.

        pool = ThreadPool(min_workers=8)
        pool.start()
        pool.submit(serve_connection, args=(conn,))   # False if saturated
        pool.shutdown(timeout=2.0)
    """

    def __init__(
        self,
        min_workers: int = 8,
        max_workers: Optional[int] = None,
        max_queued: int = 128,
        idle_timeout: float = 60.0,
    ):
        """
        Args:
            min_workers: Threads started by start() and kept while idle.
            max_workers: Upper bound on threads; None for no bound.
            max_queued: Tasks that may wait for a free worker before
                        submit() starts refusing. Only reachable with a
                        max_workers bound.
            idle_timeout: Seconds an extra worker may sit idle before it
                          exits.
        """
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queued = max_queued
        self.idle_timeout = idle_timeout

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=max_queued)
        self._workers: list[Worker] = []
        self._idle = 0
        self._backlog = 0
        self._lock = threading.Lock()
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    def start(self):
        """Start min_workers threads. Calling it twice is harmless."""
        if self._started:
            return

        logger.debug(f"Starting thread pool with {self.min_workers} workers")
        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker()
        self._started = True
        self._shutdown = False

    def _add_worker(self) -> Worker:
        # Caller holds self._lock
        worker = Worker(pool=self, worker_id=self._next_worker_id)
        self._next_worker_id += 1
        self._workers.append(worker)
        self._idle += 1
        worker.start()
        return worker

    def _at_capacity(self) -> bool:
        return self.max_workers is not None and len(self._workers) >= self.max_workers

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
    ) -> bool:
        """
        Queue func(*args, **kwargs) without blocking.

        Returns:
            True if queued, False if the queue is full.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if not self._started or self._shutdown:
            raise RuntimeError("Thread pool is not running")

        with self._lock:
            if self._idle == 0 and not self._at_capacity():
                logger.debug(
                    f"Scaling up: {len(self._workers)} -> {len(self._workers) + 1} workers"
                )
                self._add_worker()

            try:
                self._task_queue.put_nowait(Task(func=func, args=args, kwargs=kwargs or {}))
            except queue.Full:
                return False

            if self._idle > 0:
                self._idle -= 1
            else:
                self._backlog += 1
        return True

    def _task_finished(self) -> None:
        with self._lock:
            if self._backlog > 0:
                self._backlog -= 1
            else:
                self._idle += 1

    def _retire(self, worker: Worker) -> bool:
        """Let an idle worker exit if the pool has more than it needs."""
        with self._lock:
            if self._shutdown or self._idle == 0 or len(self._workers) <= self.min_workers:
                return False
            self._idle -= 1
            self._workers.remove(worker)
        logger.debug(f"Worker {worker.worker_id} retiring after {self.idle_timeout:.0f}s idle")
        return True

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Stop all workers.

        Args:
            timeout: Total seconds to wait for workers to exit; None waits
                     indefinitely.

        Returns:
            True if every worker exited in time.
        """
        if not self._started:
            return True

        self._shutdown = True
        deadline = None if timeout is None else time.monotonic() + timeout

        with self._lock:
            workers = list(self._workers)

        for _ in workers:
            # Pills queue up behind tasks still waiting
            try:
                self._task_queue.put(None, timeout=self._remaining(deadline))
            except queue.Full:
                break

        all_stopped = True
        for worker in workers:
            worker.join(self._remaining(deadline))
            if worker.is_alive():
                all_stopped = False

        if not all_stopped:
            logger.warning("Thread pool shutdown timed out; daemon workers left running")

        with self._lock:
            self._workers.clear()
            self._idle = 0
            self._backlog = 0
        self._started = False
        return all_stopped

    @staticmethod
    def _remaining(deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return max(0.0, deadline - time.monotonic())

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def idle_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def queued_tasks(self) -> int:
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        """Worker and task counters."""
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
