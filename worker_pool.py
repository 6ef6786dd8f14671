import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Set

from config import AgentConfig

# ==========================================
# Worker Pool: one agent loop per task
# ==========================================

logger = logging.getLogger(__name__)


class TaskExecutor:
    """
    Bounded pool with caller-runs backpressure.

    Admission mirrors a core/max pool with a bounded queue: tasks go to the
    core workers until core_workers + queue_capacity are in flight, then to
    up to (max_workers - core_workers) overflow workers, and past that the
    submitting thread runs the task itself. Nothing is dropped.
    """

    def __init__(self, config: AgentConfig, handler: Callable[[str], object]):
        self.handler = handler
        self._core_limit = config.core_workers + config.queue_capacity
        self._overflow_limit = config.max_workers - config.core_workers
        self._core = ThreadPoolExecutor(max_workers=config.core_workers,
                                        thread_name_prefix="agent-task")
        self._overflow = None
        if self._overflow_limit:
            self._overflow = ThreadPoolExecutor(max_workers=self._overflow_limit,
                                                thread_name_prefix="agent-task-extra")
        self._lock = threading.Lock()
        self._core_inflight = 0
        self._overflow_inflight = 0
        self._active: Set[str] = set()

    def submit(self, task_id: str) -> Future:
        """Schedules a task. A task id that is still queued or running is rejected."""
        with self._lock:
            if task_id in self._active:
                raise ValueError(f"Task {task_id} is already queued or running")
            self._active.add(task_id)

            if self._core_inflight < self._core_limit:
                self._core_inflight += 1
                return self._core.submit(self._run, task_id, "core")
            if self._overflow is not None and self._overflow_inflight < self._overflow_limit:
                self._overflow_inflight += 1
                return self._overflow.submit(self._run, task_id, "overflow")

        logger.warning("Worker pool saturated, running task %s on the caller thread", task_id)
        future = Future()
        future.set_running_or_notify_cancel()
        try:
            future.set_result(self.handler(task_id))
        except Exception as e:
            logger.exception("Error in task processing for task: %s", task_id)
            future.set_exception(e)
        finally:
            with self._lock:
                self._active.discard(task_id)
        return future

    def _run(self, task_id: str, lane: str):
        logger.info("Starting async processing for task: %s", task_id)
        try:
            return self.handler(task_id)
        except Exception:
            logger.exception("Error in async task processing for task: %s", task_id)
            raise
        finally:
            with self._lock:
                self._active.discard(task_id)
                if lane == "core":
                    self._core_inflight -= 1
                else:
                    self._overflow_inflight -= 1

    def shutdown(self, wait: bool = True) -> None:
        self._core.shutdown(wait=wait)
        if self._overflow is not None:
            self._overflow.shutdown(wait=wait)
