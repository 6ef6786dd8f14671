import logging
import re
from typing import List, Optional

from data_types import ExecutionResult, ParsedTestCase, TestCaseResult, TestResult
from sandbox import CodeSanitizer, SandboxRunner

# ==========================================
# Test Harness: parse cases, synthesize a driver, compare output
# ==========================================

logger = logging.getLogger(__name__)

DEFAULT_METHOD_NAME = "solution"

# "Input: X, Output: Y" or "Input: X, Expected: Y"
_INPUT_OUTPUT = re.compile(r"input\s*:\s*(.+?)\s*,\s*(?:output|expected)\s*:\s*(.+)", re.IGNORECASE)
# "X -> Y" or "X => Y"
_ARROW = re.compile(r"(.+?)\s*(?:->|=>)\s*(.+)")

_METHOD_SIGNATURE = re.compile(
    r"public\s+(?:static\s+|final\s+|synchronized\s+)*"
    r"(?!class\b|interface\b|enum\b|record\b)[\w<>\[\],.?]+(?:\s*\[\s*\])*\s+(\w+)\s*\("
)
_MAIN_SIGNATURE = re.compile(r"public\s+static\s+void\s+main\s*\([^)]*\)[^{]*\{")


class TestCaseParser:
    __test__ = False

    def parse(self, test_case: str) -> ParsedTestCase:
        """Parses one case string. Raises ValueError if neither format matches."""
        if test_case is None or not test_case.strip():
            raise ValueError("Test case is empty")

        test_case = test_case.strip()
        for pattern in (_INPUT_OUTPUT, _ARROW):
            match = pattern.search(test_case)
            if match:
                return ParsedTestCase(
                    original=test_case,
                    input=match.group(1).strip(),
                    expected_output=match.group(2).strip(),
                )

        raise ValueError(f"Could not parse test case: {test_case}")

    def parse_all(self, test_cases: List[str]) -> List[ParsedTestCase]:
        parsed = []
        for test_case in test_cases:
            try:
                parsed.append(self.parse(test_case))
            except ValueError:
                logger.warning("Could not parse test case: %r", test_case)
        return parsed


def extract_method_name(code: str) -> str:
    """First public method that is not main(). Falls back to DEFAULT_METHOD_NAME."""
    for match in _METHOD_SIGNATURE.finditer(code):
        name = match.group(1)
        if name != "main":
            return name
    return DEFAULT_METHOD_NAME


def strip_main_method(code: str) -> str:
    """Removes an existing main() body, matching braces from its opening one."""
    match = _MAIN_SIGNATURE.search(code)
    if not match:
        return code

    depth = 1
    i = match.end()
    while i < len(code) and depth:
        if code[i] == "{":
            depth += 1
        elif code[i] == "}":
            depth -= 1
        i += 1

    if depth:
        # unbalanced: leave it for the compiler to report
        return code
    return code[:match.start()] + code[i:]


def build_driver(code: str, tests: List[ParsedTestCase], method_name: str) -> str:
    """
    Replaces main() with one that prints the method's result per test case, in order:

        public static void main(String[] args) {
            Solution sol = new Solution();
            System.out.println(sol.isEven(2));
        }
    """
    class_name = CodeSanitizer.extract_class_name(code)

    lines = ["    public static void main(String[] args) {",
             f"        {class_name} sol = new {class_name}();"]
    for i, test in enumerate(tests, 1):
        lines.append(f"        // Test case {i}: {test.original}")
        lines.append(f"        System.out.println(sol.{method_name}({test.input}));")
    lines.append("    }")
    driver = "\n".join(lines) + "\n"

    code = strip_main_method(code)
    last_brace = code.rfind("}")
    if last_brace == -1:
        logger.error("Could not find closing brace in code")
        return code
    return code[:last_brace] + "\n" + driver + "}\n"


def compare_results(tests: List[ParsedTestCase], stdout: str) -> TestResult:
    """Line i of stdout against test i. Missing lines compare as ""."""
    output_lines = stdout.strip().split("\n") if stdout.strip() else []

    results = []
    for i, test in enumerate(tests):
        expected = test.expected_output.strip()
        actual = output_lines[i].strip() if i < len(output_lines) else ""
        passed = actual == expected
        results.append(TestCaseResult(
            test_case=test.original,
            passed=passed,
            input=test.input,
            expected=expected,
            actual=actual,
            error_message=None if passed else f"Expected '{expected}' but got '{actual}'",
        ))

    passed_count = sum(1 for r in results if r.passed)
    summary = "".join(
        f"Test: {r.test_case}\n  Expected: {r.expected}\n  Actual: {r.actual}\n"
        for r in results if not r.passed
    )
    return TestResult(
        case_results=results,
        passed_count=passed_count,
        failed_count=len(results) - passed_count,
        failure_summary=summary,
    )


class TestHarness:
    __test__ = False

    def __init__(self, runner: SandboxRunner, parser: Optional[TestCaseParser] = None):
        self.runner = runner
        self.parser = parser or TestCaseParser()

    def run(self, code: str, test_cases: List[str]) -> TestResult:
        logger.info("Running %d test cases", len(test_cases))

        tests = self.parser.parse_all(test_cases)
        if not tests:
            logger.warning("No valid test cases to run")
            return TestResult(
                case_results=[],
                passed_count=0,
                failed_count=len(test_cases),
                failure_summary="Could not parse any test cases",
                parse_failed=True,
            )

        try:
            code = CodeSanitizer.sanitize(code)
        except ValueError as e:
            return self._all_failed(tests, f"Execution failed: {e}")

        method_name = extract_method_name(code)
        driver = build_driver(code, tests, method_name)
        logger.debug("Final test code being executed:\n%s", driver)

        execution = self.runner.execute(driver)
        if not execution.success:
            return self._all_failed(tests, f"Execution failed: {execution.error_message}", execution)

        return compare_results(tests, execution.stdout)

    @staticmethod
    def _all_failed(tests: List[ParsedTestCase], summary: str,
                    execution: Optional[ExecutionResult] = None) -> TestResult:
        return TestResult(
            case_results=[
                TestCaseResult(
                    test_case=t.original,
                    passed=False,
                    input=t.input,
                    expected=t.expected_output.strip(),
                    actual="",
                    error_message=summary,
                )
                for t in tests
            ],
            passed_count=0,
            failed_count=len(tests),
            failure_summary=summary,
            driver_execution=execution,
        )
