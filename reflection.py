import logging
from typing import List, Optional, Protocol, Sequence

from data_types import Attempt, ErrorType, ExecutionResult, ReflectionResult, TestResult

# ==========================================
# Reflection: classify the failure, rewrite the prompt
# ==========================================

logger = logging.getLogger(__name__)

# Keeps the rewritten prompt from growing past the model's context
MAX_ERROR_CHARS = 1500
MAX_CODE_CHARS = 4000


class ReflectionPolicy(Protocol):
    def reflect(
        self,
        code: str,
        execution: ExecutionResult,
        test_result: TestResult,
        goal: str,
        history: Sequence[Attempt],
    ) -> ReflectionResult:
        ...


FIX_GUIDANCE = {
    ErrorType.COMPILATION_ERROR: "Fix the compile errors: declare every symbol, import what you use, "
                                 "and check types, semicolons and braces.",
    ErrorType.RUNTIME_ERROR: "Guard against the exception: check nulls, array bounds, division by zero "
                             "and empty inputs before using them.",
    ErrorType.TEST_FAILURE: "The code runs but returns wrong values. Re-read each test case and trace "
                            "the algorithm by hand against it.",
    ErrorType.LOGIC_ERROR: "Some cases pass, so the approach is close. Fix the edge cases that fail "
                           "(boundaries, negatives, zero, empty input).",
    ErrorType.TIMEOUT: "The code did not finish in time. Remove infinite loops and use an algorithm "
                       "with better complexity.",
    ErrorType.MALFORMED_CODE: "Return one complete public class with the method inside it, wrapped in a "
                              "single ```java block.",
    ErrorType.TEST_PARSE_ERROR: "Write a public method taking the test inputs as arguments and returning "
                                "the expected value.",
    ErrorType.SAFETY_VIOLATION: "Do not use file I/O, network, reflection, sleeps, System.exit or "
                                "process execution.",
    ErrorType.UNKNOWN: "Rewrite the solution carefully so that it compiles, runs and prints nothing "
                       "besides what the tests expect.",
}

REQUIREMENTS = (
    "REQUIREMENTS:\n"
    "1. Write complete, runnable Java code in one public class\n"
    "2. Include a main method that tests the code\n"
    "3. Handle ALL edge cases from test cases\n"
    "4. Return ONLY the code, wrapped in ```java code blocks\n"
    "5. Do NOT use file I/O, network, or system commands\n"
)


def _truncate(text: Optional[str], limit: int) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "\n... (truncated)"


# What a run that got past the compiler can still fail with
_POST_COMPILE_TYPES = (ErrorType.RUNTIME_ERROR, ErrorType.TIMEOUT, ErrorType.SAFETY_VIOLATION)


def _classify_failed_run(execution: ExecutionResult) -> ErrorType:
    if execution.timed_out:
        return ErrorType.TIMEOUT
    if not execution.compiled:
        if "[Pre-execution Filter]" in execution.stderr:
            return ErrorType.MALFORMED_CODE
        inferred = ErrorType.from_error_message(execution.error_message)
        return inferred if inferred != ErrorType.UNKNOWN else ErrorType.COMPILATION_ERROR
    inferred = ErrorType.from_error_message(execution.error_message)
    return inferred if inferred in _POST_COMPILE_TYPES else ErrorType.RUNTIME_ERROR


def _missing_main(execution: ExecutionResult) -> bool:
    stderr = execution.stderr.lower()
    return "main method not found" in stderr or "could not find or load main class" in stderr


def classify(execution: ExecutionResult, test_result: TestResult) -> ErrorType:
    if test_result.parse_failed:
        return ErrorType.TEST_PARSE_ERROR
    if execution.timed_out or not execution.compiled:
        return _classify_failed_run(execution)
    # a missing main() is not a runtime failure; fall through to the test results
    if not execution.executed and not _missing_main(execution):
        return _classify_failed_run(execution)

    driver = test_result.driver_execution
    if driver is not None and not driver.success:
        return _classify_failed_run(driver)

    summary = test_result.failure_summary
    if summary.startswith("Execution failed:"):
        inferred = ErrorType.from_error_message(summary)
        if inferred in (ErrorType.TIMEOUT, ErrorType.COMPILATION_ERROR, ErrorType.RUNTIME_ERROR):
            return inferred
        return ErrorType.UNKNOWN
    if test_result.failed_count and test_result.passed_count:
        return ErrorType.LOGIC_ERROR
    if test_result.failed_count:
        return ErrorType.TEST_FAILURE
    return ErrorType.UNKNOWN


class RuleBasedReflection:
    """
    Deterministic reflection. Same inputs, same classification and prompt.

    The category comes from the sandbox flags and substring matches on the
    error text, and the next prompt restates the goal, shows the failing code,
    the failure and a fix hint for the category.
    """

    def reflect(
        self,
        code: str,
        execution: ExecutionResult,
        test_result: TestResult,
        goal: str,
        history: Sequence[Attempt],
    ) -> ReflectionResult:
        error_type = classify(execution, test_result)
        root_cause = self._root_cause(error_type, execution, test_result)
        suggested_fix = FIX_GUIDANCE[error_type]

        repeats = sum(1 for a in history if a.error_type == error_type)
        if repeats:
            suggested_fix += (f" This is the same kind of failure as {repeats} earlier attempt(s); "
                              "try a different approach instead of patching the previous one.")

        analysis = f"{error_type.value}: {test_result.summary}. {root_cause.splitlines()[0] if root_cause else ''}"
        logger.debug("Reflection: %s", analysis)

        return ReflectionResult(
            error_type=error_type,
            analysis=analysis.strip(),
            root_cause=root_cause,
            suggested_fix=suggested_fix,
            enhanced_prompt=self._build_prompt(goal, code, test_result, error_type, root_cause,
                                               suggested_fix, history),
        )

    @staticmethod
    def _root_cause(error_type: ErrorType, execution: ExecutionResult, test_result: TestResult) -> str:
        if error_type == ErrorType.TEST_PARSE_ERROR:
            return "None of the test cases could be parsed, so the candidate was never exercised."
        if error_type == ErrorType.TIMEOUT:
            return "Execution exceeded the time limit."
        if error_type in (ErrorType.COMPILATION_ERROR, ErrorType.MALFORMED_CODE, ErrorType.RUNTIME_ERROR):
            if not execution.success:
                return _truncate(execution.error_message, MAX_ERROR_CHARS)
        return _truncate(test_result.failure_summary, MAX_ERROR_CHARS) or "Unknown failure."

    @staticmethod
    def _build_prompt(goal, code, test_result, error_type, root_cause, suggested_fix, history) -> str:
        parts = [
            "You are an expert Java programmer. Your previous solution failed. Fix it.\n",
            f"TASK: {goal}\n",
        ]

        if test_result.case_results:
            parts.append("TEST CASES:")
            for r in test_result.case_results:
                mark = "PASS" if r.passed else "FAIL"
                parts.append(f"- [{mark}] {r.test_case}")
            parts.append("")

        parts.append("PREVIOUS CODE:\n```java\n" + _truncate(code, MAX_CODE_CHARS) + "\n```\n")
        parts.append(f"ERROR TYPE: {error_type.value}")
        parts.append(f"WHAT WENT WRONG:\n{root_cause}\n")
        parts.append(f"HOW TO FIX:\n{suggested_fix}\n")

        earlier = [a.error_type.value for a in history if a.error_type]
        if earlier:
            parts.append("EARLIER FAILURES: " + ", ".join(earlier) + "\n")

        parts.append(REQUIREMENTS)
        parts.append("Generate the corrected code now:")
        return "\n".join(parts)
