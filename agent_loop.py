import logging
from typing import List, Optional, Protocol

from data_types import (
    Attempt,
    ErrorType,
    StaleTaskError,
    Task,
    TaskNotFoundError,
    TaskStatus,
    utcnow,
)
from generator import GenerationError
from harness import TestHarness
from reflection import ReflectionPolicy
from safety import SafetyGate
from sandbox import SandboxRunner
from task_store import TaskStore

# ==========================================
# Agent Loop: generate -> screen -> run -> test -> reflect
# ==========================================

logger = logging.getLogger(__name__)


class Generator(Protocol):
    def generate(self, prompt: str) -> str: ...


def build_initial_prompt(task: Task) -> str:
    prompt = "You are an expert Java programmer. Generate clean, well-documented Java code.\n\n"
    prompt += f"TASK: {task.goal}\n\n"

    if task.description:
        prompt += f"DESCRIPTION: {task.description}\n\n"

    prompt += "TEST CASES:\n"
    for test_case in task.test_cases:
        prompt += f"- {test_case}\n"

    prompt += """
REQUIREMENTS:
1. Write complete, runnable Java code
2. Include a main method that tests the code
3. Add comments explaining the logic
4. Handle ALL edge cases from test cases
5. Return ONLY the code, wrapped in ```java code blocks
6. Do NOT use file I/O, network, or system commands

Generate the code now:"""
    return prompt


class AgentLoop:
    """Drives one task from PENDING to a terminal status, one attempt per iteration."""

    def __init__(
        self,
        store: TaskStore,
        generator: Generator,
        safety_gate: SafetyGate,
        runner: SandboxRunner,
        harness: TestHarness,
        reflection: ReflectionPolicy,
    ):
        self.store = store
        self.generator = generator
        self.safety_gate = safety_gate
        self.runner = runner
        self.harness = harness
        self.reflection = reflection

    def process_task(self, task_id: str) -> Optional[Task]:
        """
        Runs the loop for a stored task and writes its terminal status.

        Never raises. Any error ends the task as FAILED with the message recorded.
        If the task is cancelled while running, the loop stops at its next
        write and leaves the task CANCELLED.
        """
        try:
            task = self.store.get(task_id)
        except TaskNotFoundError:
            logger.error("Task not found: %s", task_id)
            return None

        if task.status != TaskStatus.PENDING:
            logger.info("Task %s is %s, not starting it", task_id, task.status.value)
            return task

        logger.info("Starting agent loop for task: %s", task_id)
        owned_status = TaskStatus.PENDING
        try:
            task.status = TaskStatus.IN_PROGRESS
            task.started_at = utcnow()
            self.store.update(task, expected_status=owned_status)
            owned_status = TaskStatus.IN_PROGRESS

            if self._run_loop(task):
                task.status = TaskStatus.COMPLETED
                logger.info("Task %s completed successfully!", task_id)
            else:
                task.status = TaskStatus.FAILED
                task.error_message = f"Failed after {task.current_iteration} iterations"
                logger.warning("Task %s failed after %d iterations", task_id, task.current_iteration)

            task.completed_at = utcnow()
            return self.store.update(task, expected_status=owned_status)

        except StaleTaskError as e:
            logger.info("Task %s stopped: %s", task_id, e)
            return self.store.get(task_id)

        except Exception as e:
            logger.exception("Error processing task %s", task_id)
            task.status = TaskStatus.FAILED
            task.error_message = f"Internal error: {e}"
            task.completed_at = utcnow()
            try:
                return self.store.update(task, expected_status=owned_status)
            except StaleTaskError as stale:
                logger.info("Task %s stopped: %s", task_id, stale)
            except Exception:
                logger.exception("Could not record failure for task %s", task_id)
            return task

    def _run_loop(self, task: Task) -> bool:
        """Returns True once every test passes, False when the iterations run out."""
        prompt = build_initial_prompt(task)
        history: List[Attempt] = []

        for iteration in range(task.max_iterations):
            number = iteration + 1
            logger.info("=== Iteration %d / %d ===", number, task.max_iterations)

            task.current_iteration = number
            self.store.update(task, expected_status=TaskStatus.IN_PROGRESS)

            # STEP 1: GENERATE CODE
            try:
                code = self.generator.generate(prompt)
            except GenerationError as e:
                logger.error("Code generation failed: %s", e)
                continue

            # STEP 2: SAFETY CHECK
            verdict = self.safety_gate.check(code)
            if not verdict.safe:
                logger.warning("Code failed safety check: %s", verdict.summary)
                attempt = Attempt(
                    task_id=task.id,
                    iteration_number=number,
                    generated_code=code,
                    test_passed=False,
                    error_type=ErrorType.SAFETY_VIOLATION,
                    error_message=verdict.summary,
                    reflection_analysis=verdict.summary,
                )
                self.store.append_attempt(task.id, attempt)
                history.append(attempt)
                prompt += f"\n\nIMPORTANT: Do NOT use: {verdict.summary}"
                continue

            # STEP 3: EXECUTE CODE, STEP 4: RUN TESTS
            execution = self.runner.execute(code)
            test_result = self.harness.run(code, task.test_cases)
            logger.info("Test results: %s", test_result.summary)

            # STEP 5: CHECK SUCCESS
            if test_result.all_passed:
                attempt = Attempt(
                    task_id=task.id,
                    iteration_number=number,
                    generated_code=code,
                    test_passed=True,
                    test_output=execution.stdout,
                    execution_time_ms=execution.execution_time_ms,
                )
                self.store.append_attempt(task.id, attempt)
                task.generated_code = code
                return True

            # STEP 6: REFLECT ON FAILURE
            reflection = self.reflection.reflect(code, execution, test_result, task.goal, list(history))
            logger.info("Reflection: %s - %s", reflection.error_type.value,
                        reflection.root_cause.splitlines()[0] if reflection.root_cause else "")

            attempt = Attempt(
                task_id=task.id,
                iteration_number=number,
                generated_code=code,
                test_passed=False,
                test_output=execution.stdout,
                error_message=execution.error_message or test_result.failure_summary,
                error_type=reflection.error_type,
                reflection_analysis=reflection.analysis,
                root_cause=reflection.root_cause,
                suggested_fix=reflection.suggested_fix,
                execution_time_ms=execution.execution_time_ms,
            )
            self.store.append_attempt(task.id, attempt)
            history.append(attempt)

            # STEP 7: UPDATE PROMPT FOR NEXT ITERATION
            prompt = reflection.enhanced_prompt

        logger.warning("Max iterations (%d) reached without success", task.max_iterations)
        return False
