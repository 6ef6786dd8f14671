import pytest

from data_types import Attempt, ErrorType, ExecutionResult, TestCaseResult, TestResult
from reflection import RuleBasedReflection, classify

CODE = "public class Solution { public boolean isEven(int n) { return false; } }"
GOAL = "return true if input is even"


def ok_run(stdout=""):
    return ExecutionResult(compiled=True, executed=True, stdout=stdout, exit_code=0)


def failed_tests(passed=0, failed=2, summary="Test: Input: 2, Output: true\n  Expected: true\n  Actual: false\n"):
    cases = [TestCaseResult("Input: 2, Output: true", False, "2", "true", "false")]
    return TestResult(case_results=cases, passed_count=passed, failed_count=failed, failure_summary=summary)


@pytest.mark.parametrize(
    "message, expected",
    [
        ("Solution.java:3: error: cannot find symbol", ErrorType.COMPILATION_ERROR),
        ("Solution.java:5: error: ';' expected", ErrorType.COMPILATION_ERROR),
        ("Exception in thread \"main\" java.lang.NullPointerException", ErrorType.RUNTIME_ERROR),
        ("expected <3> but was <4>", ErrorType.TEST_FAILURE),
        ("Execution timed out after 30s.", ErrorType.TIMEOUT),
        ("access denied", ErrorType.SAFETY_VIOLATION),
        ("something odd", ErrorType.UNKNOWN),
        ("", ErrorType.UNKNOWN),
        (None, ErrorType.UNKNOWN),
    ],
)
def test_error_type_from_message(message, expected):
    assert ErrorType.from_error_message(message) == expected


class TestClassify:
    def test_timeout(self):
        execution = ExecutionResult(compiled=True, executed=False, timed_out=True, stderr="Execution timed out")
        assert classify(execution, failed_tests()) == ErrorType.TIMEOUT

    def test_compile_error(self):
        execution = ExecutionResult(compiled=False, stderr="Solution.java:1: error: cannot find symbol")
        assert classify(execution, failed_tests()) == ErrorType.COMPILATION_ERROR

    def test_unrecognized_compile_output_is_still_compile_error(self):
        execution = ExecutionResult(compiled=False, stderr="javac crashed")
        assert classify(execution, failed_tests()) == ErrorType.COMPILATION_ERROR

    def test_structural_rejection_is_malformed(self):
        execution = ExecutionResult(compiled=False, stderr="[Pre-execution Filter] Code does not contain a valid class")
        assert classify(execution, failed_tests()) == ErrorType.MALFORMED_CODE

    def test_runtime_error(self):
        execution = ExecutionResult(compiled=True, executed=False, exit_code=1,
                                    stderr="Exception in thread \"main\" java.lang.ArithmeticException: / by zero")
        assert classify(execution, failed_tests()) == ErrorType.RUNTIME_ERROR

    def test_missing_main_defers_to_tests(self):
        execution = ExecutionResult(compiled=True, executed=False, exit_code=1,
                                    stderr="Error: Main method not found in class Solution")
        assert classify(execution, failed_tests()) == ErrorType.TEST_FAILURE

    def test_exception_text_with_expected_is_runtime_error(self):
        execution = ExecutionResult(
            compiled=True, executed=False, exit_code=1,
            stderr="Exception in thread \"main\" java.lang.IllegalArgumentException: expected a positive number",
        )
        assert classify(execution, failed_tests(passed=1, failed=1)) == ErrorType.RUNTIME_ERROR

    def test_driver_crash_after_compiling_is_runtime_error(self):
        driver = ExecutionResult(compiled=True, executed=False, exit_code=1,
                                 stderr="java.lang.IllegalStateException: expected non-empty input")
        result = failed_tests(summary=f"Execution failed: {driver.stderr}")
        result.driver_execution = driver
        assert classify(ok_run(), result) == ErrorType.RUNTIME_ERROR

    def test_driver_compile_failure(self):
        driver = ExecutionResult(compiled=False, exit_code=1, stderr="Solution.java:9: error: ';' expected")
        result = failed_tests(summary=f"Execution failed: {driver.stderr}")
        result.driver_execution = driver
        assert classify(ok_run(), result) == ErrorType.COMPILATION_ERROR

    def test_all_wrong_is_test_failure(self):
        assert classify(ok_run(), failed_tests(passed=0, failed=2)) == ErrorType.TEST_FAILURE

    def test_partly_wrong_is_logic_error(self):
        assert classify(ok_run(), failed_tests(passed=1, failed=1)) == ErrorType.LOGIC_ERROR

    def test_parse_failure(self):
        result = TestResult(failed_count=1, failure_summary="Could not parse any test cases", parse_failed=True)
        assert classify(ok_run(), result) == ErrorType.TEST_PARSE_ERROR

    def test_driver_runtime_failure(self):
        result = failed_tests(summary="Execution failed: Exception in thread \"main\" java.lang.NullPointerException")
        assert classify(ok_run(), result) == ErrorType.RUNTIME_ERROR


class TestRuleBasedReflection:
    def test_result_fields(self):
        result = RuleBasedReflection().reflect(CODE, ok_run(), failed_tests(), GOAL, [])

        assert result.error_type == ErrorType.TEST_FAILURE
        assert "Expected: true" in result.root_cause
        assert result.suggested_fix
        assert result.analysis.startswith("TEST_FAILURE")

    def test_prompt_carries_goal_code_and_failure(self):
        prompt = RuleBasedReflection().reflect(CODE, ok_run(), failed_tests(), GOAL, []).enhanced_prompt

        assert f"TASK: {GOAL}" in prompt
        assert CODE in prompt
        assert "[FAIL] Input: 2, Output: true" in prompt
        assert "```java" in prompt

    def test_deterministic(self):
        policy = RuleBasedReflection()
        first = policy.reflect(CODE, ok_run(), failed_tests(), GOAL, [])
        second = policy.reflect(CODE, ok_run(), failed_tests(), GOAL, [])
        assert first == second

    def test_repeated_failures_are_called_out(self):
        history = [
            Attempt(task_id="t", iteration_number=1, generated_code=CODE, error_type=ErrorType.TEST_FAILURE),
            Attempt(task_id="t", iteration_number=2, generated_code=CODE, error_type=ErrorType.SAFETY_VIOLATION),
        ]

        result = RuleBasedReflection().reflect(CODE, ok_run(), failed_tests(), GOAL, history)

        assert "1 earlier attempt" in result.suggested_fix
        assert "EARLIER FAILURES: TEST_FAILURE, SAFETY_VIOLATION" in result.enhanced_prompt

    def test_unknown_still_yields_prompt(self):
        result = RuleBasedReflection().reflect(
            CODE,
            ok_run(),
            TestResult(failure_summary="Execution failed: ???", failed_count=1),
            GOAL,
            [],
        )
        assert result.error_type == ErrorType.UNKNOWN
        assert GOAL in result.enhanced_prompt
        assert result.enhanced_prompt.endswith("Generate the corrected code now:")

    def test_long_code_is_truncated(self):
        code = "public class Big {\n" + "    int x;\n" * 2000 + "}"
        prompt = RuleBasedReflection().reflect(code, ok_run(), failed_tests(), GOAL, []).enhanced_prompt
        assert "(truncated)" in prompt
