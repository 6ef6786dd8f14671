import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

# ==========================================
# Core Data Models
# ==========================================


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)


class ErrorType(str, Enum):
    """Failure categories the reflection step sorts attempts into."""

    COMPILATION_ERROR = "COMPILATION_ERROR"
    RUNTIME_ERROR = "RUNTIME_ERROR"
    TEST_FAILURE = "TEST_FAILURE"
    TIMEOUT = "TIMEOUT"
    SAFETY_VIOLATION = "SAFETY_VIOLATION"
    LOGIC_ERROR = "LOGIC_ERROR"
    TEST_PARSE_ERROR = "TEST_PARSE_ERROR"
    MALFORMED_CODE = "MALFORMED_CODE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_error_message(cls, message: Optional[str]) -> "ErrorType":
        """Infers the most likely category from compiler/runtime output."""
        if not message:
            return cls.UNKNOWN

        lower = message.lower()

        if any(s in lower for s in (
            "cannot find symbol",
            "illegal start",
            "class, interface, or enum expected",
            "';' expected",
            "expected",
        )):
            # "expected ... but was" is an assertion message, not javac output
            if "but was" not in lower:
                return cls.COMPILATION_ERROR

        if "exception" in lower:
            return cls.RUNTIME_ERROR

        if ("expected" in lower and "but was" in lower) or \
                "assertion failed" in lower or "test failed" in lower:
            return cls.TEST_FAILURE

        if "timeout" in lower or "timed out" in lower or "time limit exceeded" in lower:
            return cls.TIMEOUT

        if any(s in lower for s in ("security", "access denied", "permission", "forbidden")):
            return cls.SAFETY_VIOLATION

        return cls.UNKNOWN


# ------------------------------------------
# Errors
# ------------------------------------------

class StructuralError(ValueError):
    """Candidate source has no recognizable class, interface, enum or method."""


class TaskNotFoundError(KeyError):
    def __init__(self, task_id: str):
        super().__init__(task_id)
        self.task_id = task_id

    def __str__(self) -> str:
        return f"Task not found: {self.task_id}"


class StaleTaskError(RuntimeError):
    """A conditional status update found a different status than expected."""

    def __init__(self, task_id: str, expected: TaskStatus, actual: TaskStatus):
        super().__init__(f"Task {task_id} is {actual.value}, expected {expected.value}")
        self.task_id = task_id
        self.expected = expected
        self.actual = actual


class DuplicateAttemptError(ValueError):
    pass


# ------------------------------------------
# Persisted records
# ------------------------------------------

@dataclass
class Task:
    goal: str
    test_cases: List[str]
    description: Optional[str] = None
    language: str = "java"
    status: TaskStatus = TaskStatus.PENDING
    current_iteration: int = 0
    max_iterations: int = 10
    generated_code: Optional[str] = None
    error_message: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "goal": self.goal,
            "description": self.description,
            "language": self.language,
            "test_cases": list(self.test_cases),
            "status": self.status.value,
            "current_iteration": self.current_iteration,
            "max_iterations": self.max_iterations,
            "generated_code": self.generated_code,
            "error_message": self.error_message,
            "created_at": _iso(self.created_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
        }


@dataclass(frozen=True)
class Attempt:
    """One iteration's candidate and outcome. Never edited after it is written."""

    task_id: str
    iteration_number: int
    generated_code: str
    test_passed: bool = False
    test_output: Optional[str] = None
    error_message: Optional[str] = None
    error_type: Optional[ErrorType] = None
    reflection_analysis: Optional[str] = None
    root_cause: Optional[str] = None
    suggested_fix: Optional[str] = None
    execution_time_ms: Optional[int] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "iteration_number": self.iteration_number,
            "generated_code": self.generated_code,
            "test_passed": self.test_passed,
            "test_output": self.test_output,
            "error_message": self.error_message,
            "error_type": self.error_type.value if self.error_type else None,
            "reflection_analysis": self.reflection_analysis,
            "root_cause": self.root_cause,
            "suggested_fix": self.suggested_fix,
            "execution_time_ms": self.execution_time_ms,
            "created_at": _iso(self.created_at),
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ------------------------------------------
# Per-iteration results (never persisted)
# ------------------------------------------

@dataclass(frozen=True)
class ParsedTestCase:
    original: str
    input: str
    expected_output: str

    def __str__(self) -> str:
        return f"Input: {self.input}, Expected: {self.expected_output}"


@dataclass
class ExecutionResult:
    compiled: bool = False
    executed: bool = False
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    timed_out: bool = False
    execution_time_ms: int = 0
    exception_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.compiled and self.executed and not self.timed_out

    @property
    def error_message(self) -> Optional[str]:
        if self.success:
            return None
        if self.stderr:
            return self.stderr
        if self.exception_message:
            return self.exception_message
        return f"Process exited with code {self.exit_code}"


@dataclass(frozen=True)
class TestCaseResult:
    __test__ = False

    test_case: str
    passed: bool
    input: str
    expected: str
    actual: str
    error_message: Optional[str] = None


@dataclass
class TestResult:
    """Outcome of running every parsed test case against one candidate."""

    __test__ = False  # keep pytest from collecting this

    case_results: List[TestCaseResult] = field(default_factory=list)
    passed_count: int = 0
    failed_count: int = 0
    failure_summary: str = ""
    parse_failed: bool = False
    # the synthesized driver run, when it failed
    driver_execution: Optional[ExecutionResult] = None

    @property
    def all_passed(self) -> bool:
        return self.failed_count == 0 and self.passed_count > 0

    @property
    def pass_rate(self) -> float:
        total = self.passed_count + self.failed_count
        return 0.0 if total == 0 else self.passed_count / total

    @property
    def summary(self) -> str:
        total = self.passed_count + self.failed_count
        return f"{self.passed_count}/{total} tests passed ({self.pass_rate * 100:.1f}%)"


@dataclass(frozen=True)
class SafetyVerdict:
    violations: List[str] = field(default_factory=list)

    @property
    def safe(self) -> bool:
        return not self.violations

    def is_safe(self) -> bool:
        return self.safe

    @property
    def summary(self) -> str:
        if not self.violations:
            return "No safety violations"
        return "; ".join(self.violations)


@dataclass(frozen=True)
class ReflectionResult:
    error_type: ErrorType
    analysis: str
    root_cause: str
    suggested_fix: str
    enhanced_prompt: str
