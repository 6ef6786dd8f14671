import copy
import logging
import threading
from typing import Dict, List, Optional, Protocol

from data_types import (
    Attempt,
    DuplicateAttemptError,
    StaleTaskError,
    Task,
    TaskNotFoundError,
    TaskStatus,
    utcnow,
)

# ==========================================
# Task Store: tasks and attempts keyed by id
# ==========================================

logger = logging.getLogger(__name__)


class TaskStore(Protocol):
    def create(self, task: Task) -> Task: ...

    def get(self, task_id: str) -> Task: ...

    def update(self, task: Task, expected_status: Optional[TaskStatus] = None) -> Task: ...

    def list_by_status(self, status: Optional[TaskStatus], page: int = 0, size: int = 20) -> List[Task]: ...

    def append_attempt(self, task_id: str, attempt: Attempt) -> Attempt: ...

    def list_attempts(self, task_id: str) -> List[Attempt]: ...

    def cancel(self, task_id: str) -> Task: ...


class InMemoryTaskStore:
    """
    Arena of tasks and attempts indexed by id.

    Every method runs under one lock and hands out copies, so a write is
    visible to readers exactly when the call returns and callers never
    share live objects. Attempts hold a task_id, not a reference to the task.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._tasks: Dict[str, Task] = {}
        self._attempts: Dict[str, List[Attempt]] = {}

    def create(self, task: Task) -> Task:
        with self._lock:
            if task.id in self._tasks:
                raise ValueError(f"Task {task.id} already exists")
            self._tasks[task.id] = copy.deepcopy(task)
            self._attempts[task.id] = []
            return copy.deepcopy(task)

    def get(self, task_id: str) -> Task:
        with self._lock:
            return copy.deepcopy(self._get(task_id))

    def update(self, task: Task, expected_status: Optional[TaskStatus] = None) -> Task:
        """
        Replaces the stored task. With expected_status, only if the stored
        status still equals it; otherwise raises StaleTaskError.
        """
        with self._lock:
            current = self._get(task.id)
            if expected_status is not None and current.status != expected_status:
                raise StaleTaskError(task.id, expected_status, current.status)
            self._tasks[task.id] = copy.deepcopy(task)
            return copy.deepcopy(task)

    def list_by_status(self, status: Optional[TaskStatus], page: int = 0, size: int = 20) -> List[Task]:
        if page < 0 or size < 1:
            raise ValueError("page must be >= 0 and size >= 1")
        with self._lock:
            tasks = [t for t in self._tasks.values() if status is None or t.status == status]
            tasks.sort(key=lambda t: t.created_at, reverse=True)
            return [copy.deepcopy(t) for t in tasks[page * size:(page + 1) * size]]

    def append_attempt(self, task_id: str, attempt: Attempt) -> Attempt:
        with self._lock:
            self._get(task_id)
            attempts = self._attempts[task_id]
            if any(a.iteration_number == attempt.iteration_number for a in attempts):
                raise DuplicateAttemptError(
                    f"Task {task_id} already has an attempt for iteration {attempt.iteration_number}")
            attempts.append(attempt)
            return attempt

    def list_attempts(self, task_id: str) -> List[Attempt]:
        with self._lock:
            self._get(task_id)
            return sorted(self._attempts[task_id], key=lambda a: a.iteration_number)

    def cancel(self, task_id: str) -> Task:
        """PENDING/IN_PROGRESS -> CANCELLED. Terminal tasks are returned unchanged."""
        with self._lock:
            task = self._get(task_id)
            if not task.status.is_terminal:
                task.status = TaskStatus.CANCELLED
                task.completed_at = utcnow()
                logger.info("Cancelled task: %s", task_id)
            return copy.deepcopy(task)

    def _get(self, task_id: str) -> Task:
        try:
            return self._tasks[task_id]
        except KeyError:
            raise TaskNotFoundError(task_id) from None
