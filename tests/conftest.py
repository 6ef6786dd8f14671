import sys
import tempfile
import textwrap
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from config import AgentConfig
from data_types import ExecutionResult
from generator import GenerationError


# Stand-ins for javac/java. The "compiler" copies the source into Name.class;
# the "runtime" reads it back and obeys // OUT:, // ERR:, // EXIT:, // READ_STDIN and // HANG lines.
FAKE_JAVAC = textwrap.dedent("""
    import sys, time, pathlib
    src = pathlib.Path(sys.argv[1])
    text = src.read_text()
    if "SYNTAX_ERROR" in text:
        sys.stderr.write(src.name + ":1: error: ';' expected\\n")
        sys.exit(1)
    if "SLOW_COMPILE" in text:
        time.sleep(30)
    if "NESTED_OUTPUT" in text:
        nested = pathlib.Path("pkg") / "inner"
        nested.mkdir(parents=True)
        (nested / "Helper.class").write_text("helper")
    if "NO_ARTIFACT" not in text:
        src.with_suffix(".class").write_text(text)
""")

FAKE_JAVA = textwrap.dedent("""
    import sys, time, pathlib
    text = pathlib.Path(sys.argv[1] + ".class").read_text()
    code = 0
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("// OUT:"):
            print(line[len("// OUT:"):].strip())
        elif line.startswith("// ERR:"):
            print(line[len("// ERR:"):].strip(), file=sys.stderr)
        elif line.startswith("// EXIT:"):
            code = int(line[len("// EXIT:"):])
        elif line == "// READ_STDIN":
            print(repr(sys.stdin.readline()))
        elif line == "// HANG":
            while True:
                time.sleep(0.05)
    sys.exit(code)
""")


@pytest.fixture
def config() -> AgentConfig:
    return AgentConfig(api_key="test-key", max_iterations=10, compile_timeout=10.0, run_timeout=10.0)


@pytest.fixture
def fake_toolchain(tmp_path, config) -> AgentConfig:
    tools = tmp_path / "tools"
    tools.mkdir()
    (tools / "fake_javac.py").write_text(FAKE_JAVAC)
    (tools / "fake_java.py").write_text(FAKE_JAVA)
    return replace(
        config,
        compile_command=(sys.executable, str(tools / "fake_javac.py")),
        run_command=(sys.executable, str(tools / "fake_java.py")),
    )


@pytest.fixture
def workspace_root(tmp_path, monkeypatch) -> Path:
    """Points tempfile at an empty directory so leftover workspaces are visible."""
    root = tmp_path / "workspaces"
    root.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(root))
    return root


class ScriptedGenerator:
    """Returns queued responses in order; an Exception in the queue is raised."""

    def __init__(self, responses: List, on_call: Optional[Callable[[int], None]] = None):
        self.responses = list(responses)
        self.prompts: List[str] = []
        self.on_call = on_call

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.on_call is not None:
            self.on_call(len(self.prompts))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class FakeRunner:
    """
    SandboxRunner stand-in. Harness drivers (recognized by their
    "// Test case" comments) get the stdout mapped to the first marker found
    in the source; plain runs succeed with empty output.
    """

    def __init__(self, outputs: Optional[Dict[str, str]] = None, failure: Optional[ExecutionResult] = None):
        self.outputs = outputs or {}
        self.failure = failure
        self.calls: List[str] = []

    def execute(self, code: str) -> ExecutionResult:
        self.calls.append(code)
        if self.failure is not None:
            return self.failure
        stdout = ""
        if "// Test case" in code:
            for marker, output in self.outputs.items():
                if marker in code:
                    stdout = output
                    break
        return ExecutionResult(compiled=True, executed=True, stdout=stdout, exit_code=0, execution_time_ms=3)


@pytest.fixture
def generation_error() -> GenerationError:
    return GenerationError("Code generation failed: rate limited")


EVEN_CORRECT = """```java
public class Solution {
    // CORRECT
    public boolean isEven(int n) {
        return n % 2 == 0;
    }
}
```"""

EVEN_WRONG = """public class Solution {
    // WRONG
    public boolean isEven(int n) {
        return false;
    }
}"""

UNSAFE = """public class Solution {
    public boolean isEven(int n) {
        System.exit(0);
        return true;
    }
}"""
