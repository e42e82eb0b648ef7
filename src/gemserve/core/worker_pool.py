"""
=============================================================================
WORKER POOL
=============================================================================

A fixed set of worker threads pulling connections off a bounded queue.

    accept loop                      workers
    ───────────                      ───────
    conn ──► submit() ──► [queue] ──► Worker-0: read line, handle, reply
                           (bounded)  Worker-1: ...
                              │       Worker-N: ...
                              │
                              └── full? submit() returns False
                                  → server answers 41 SERVER UNAVAILABLE

A Gemini request is one line in, one response out, then the connection
closes. Each request is handled start to finish by a single worker, and
workers share nothing but the read-only configuration, so there's
nothing to lock around request handling.

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
    """
    A deferred function call, plus when it was queued.

    on_drop, if set, is called with the same arguments instead of func
    when the task goes stale, so the owner can release what it holds.
    """

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    timeout: Optional[float] = None
    on_drop: Optional[Callable[..., Any]] = None
    submitted_at: float = field(default_factory=time.time)

    @property
    def is_stale(self) -> bool:
        """True if the task waited in the queue longer than its timeout."""
        return bool(self.timeout) and (time.time() - self.submitted_at) > self.timeout


class Worker(threading.Thread):
    """Worker thread executing tasks from the shared queue until it gets None."""

    def __init__(self, task_queue: queue.Queue, worker_id: int):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.state = WorkerState.IDLE
        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while True:
            task = self.task_queue.get()
            try:
                if task is None:
                    break
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        """
        Execute a single task.

        An exception from the task is logged and counted; it never kills
        the worker.
        """
        self.state = WorkerState.BUSY
        start_time = time.time()

        try:
            if task.is_stale:
                logger.warning(
                    f"Task dropped after waiting {start_time - task.submitted_at:.2f}s "
                    f"(timeout {task.timeout}s)"
                )
                if task.on_drop is not None:
                    task.on_drop(*task.args, **task.kwargs)
                self.tasks_failed += 1
                return

            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
            logger.debug(f"Worker {self.worker_id} completed task in {time.time() - start_time:.3f}s")

        except Exception as e:
            logger.exception(f"Worker {self.worker_id} task failed: {e}")
            self.tasks_failed += 1

        finally:
            self.state = WorkerState.IDLE


class WorkerPool:
    """
    Fixed-size thread pool with a bounded task queue.

    Usage:
        pool = WorkerPool(workers=16, queue_size=100)
        pool.start()

        if not pool.submit(handle, args=(conn,)):
            reject(conn)

        pool.shutdown()
    """

    def __init__(self, workers: int = 16, queue_size: int = 100):
        self.workers = workers
        self.max_queue_size = queue_size

        self._task_queue: queue.Queue[Optional[Task]] = queue.Queue(maxsize=queue_size)
        self._workers: list[Worker] = []
        self._lock = threading.Lock()
        self._started = False
        self._shutdown = False

    def start(self):
        """Start all workers. Does nothing if already started."""
        with self._lock:
            if self._started:
                return

            logger.info(f"Starting worker pool with {self.workers} workers")
            for worker_id in range(self.workers):
                worker = Worker(self._task_queue, worker_id)
                self._workers.append(worker)
                worker.start()

            self._started = True
            self._shutdown = False

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        timeout: Optional[float] = None,
        on_drop: Optional[Callable[..., Any]] = None,
    ) -> bool:
        """
        Queue a task without blocking.

        Args:
            func: The function to execute.
            args: Positional arguments for the function.
            kwargs: Keyword arguments for the function.
            timeout: Drop the task if it waits longer than this.
            on_drop: Called with args and kwargs when the task is dropped.

        Returns:
            True if queued, False if the queue is full.

        Raises:
            RuntimeError: If the pool isn't running.
        """
        if not self._started or self._shutdown:
            raise RuntimeError("Worker pool is not running")

        task = Task(
            func=func,
            args=args,
            kwargs=kwargs or {},
            timeout=timeout,
            on_drop=on_drop,
        )
        try:
            self._task_queue.put_nowait(task)
        except queue.Full:
            return False
        return True

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop all workers.

        Args:
            wait: Let queued tasks finish first.
            timeout: Upper bound on the wait, in seconds.
        """
        with self._lock:
            if not self._started:
                return
            self._shutdown = True

        logger.info("Shutting down worker pool...")

        if wait:
            deadline = time.time() + timeout if timeout else None
            while self._task_queue.unfinished_tasks:
                if deadline and time.time() > deadline:
                    logger.warning("Shutdown timeout, abandoning queued tasks")
                    break
                time.sleep(0.05)

        # One poison pill per worker
        for _ in self._workers:
            try:
                self._task_queue.put(None, timeout=2.0)
            except queue.Full:
                break

        for worker in self._workers:
            worker.join(timeout=2.0)

        with self._lock:
            self._workers.clear()
            self._started = False

        logger.info("Worker pool shutdown complete")

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def queued(self) -> int:
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        """Worker and task counts."""
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
                "idle": len(self._workers) - self.busy_workers,
            },
            "tasks": {
                "queued": self.queued,
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
