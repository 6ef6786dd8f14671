import json
import logging
import os
from concurrent.futures import Future
from typing import Dict, List, Optional

from agent_loop import AgentLoop, Generator
from config import AgentConfig
from data_types import Attempt, Task, TaskStatus
from generator import CodeGenerator
from harness import TestHarness
from reflection import ReflectionPolicy, RuleBasedReflection
from safety import SafetyGate
from sandbox import SandboxRunner
from task_store import InMemoryTaskStore, TaskStore
from worker_pool import TaskExecutor

# ==========================================
# Task Service: create, inspect, cancel, export
# ==========================================

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ("java",)


class TaskService:
    def __init__(self, config: AgentConfig, store: TaskStore, executor: Optional[TaskExecutor] = None):
        self.config = config
        self.store = store
        self.executor = executor
        self._futures: Dict[str, Future] = {}

    def create_task(
        self,
        goal: str,
        test_cases: List[str],
        description: Optional[str] = None,
        language: str = "java",
        max_iterations: Optional[int] = None,
    ) -> Task:
        """Validates and stores a PENDING task, then hands it to the worker pool."""
        if not goal or not goal.strip():
            raise ValueError("Goal is required")
        if not test_cases or not any(tc and tc.strip() for tc in test_cases):
            raise ValueError("At least one test case is required")
        if language.lower() not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported language: {language}")
        max_iterations = max_iterations or self.config.max_iterations
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        logger.info("Creating new task: %s", goal)
        task = self.store.create(Task(
            goal=goal.strip(),
            description=description,
            language=language.lower(),
            test_cases=list(test_cases),
            status=TaskStatus.PENDING,
            max_iterations=max_iterations,
        ))
        logger.info("Created task with ID: %s", task.id)

        # create() has returned, so the task is visible to the worker
        if self.executor is not None:
            future = self.executor.submit(task.id)
            self._futures[task.id] = future
            # finished runs are read back from the store
            future.add_done_callback(lambda f, task_id=task.id: self._futures.pop(task_id, None))
        return task

    def get_task(self, task_id: str) -> Task:
        return self.store.get(task_id)

    def list_tasks(self, status: Optional[str] = None, page: int = 0, size: int = 20) -> List[Task]:
        status_filter = TaskStatus(status.upper()) if status else None
        return self.store.list_by_status(status_filter, page, size)

    def cancel_task(self, task_id: str) -> Task:
        return self.store.cancel(task_id)

    def get_attempts(self, task_id: str) -> List[Attempt]:
        return self.store.list_attempts(task_id)

    def wait_for(self, task_id: str, timeout: Optional[float] = None) -> Task:
        future = self._futures.get(task_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.store.get(task_id)

    def export_task(self, task_id: str, path: str) -> str:
        """Writes the task and its attempt history as one JSON document."""
        record = self.store.get(task_id).to_record()
        record["attempts"] = [a.to_record() for a in self.store.list_attempts(task_id)]

        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w") as f:
            json.dump(record, f, indent=2)
        return path

    def shutdown(self, wait: bool = True) -> None:
        if self.executor is not None:
            self.executor.shutdown(wait=wait)


def build_service(
    config: AgentConfig,
    generator: Optional[Generator] = None,
    reflection: Optional[ReflectionPolicy] = None,
    store: Optional[TaskStore] = None,
    runner: Optional[SandboxRunner] = None,
) -> TaskService:
    """Wires store, loop and pool from one config."""
    store = store or InMemoryTaskStore()
    runner = runner or SandboxRunner(config)
    loop = AgentLoop(
        store=store,
        generator=generator or CodeGenerator(config),
        safety_gate=SafetyGate(),
        runner=runner,
        harness=TestHarness(runner),
        reflection=reflection or RuleBasedReflection(),
    )
    return TaskService(config, store, TaskExecutor(config, loop.process_task))
