import logging
import os
import re
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Optional

from config import AgentConfig
from data_types import ExecutionResult, StructuralError

# ==========================================
# Sandbox: compile + run in a throwaway workspace
# ==========================================

logger = logging.getLogger(__name__)

DEFAULT_CLASS_NAME = "Solution"
SOURCE_SUFFIX = ".java"
ARTIFACT_SUFFIX = ".class"

_PUBLIC_CLASS = re.compile(r"public\s+(?:final\s+|abstract\s+)*class\s+(\w+)")
_ANY_CLASS = re.compile(r"\bclass\s+(\w+)")
_COMMENTS = re.compile(r"//[^\n]*|/\*.*?\*/", re.DOTALL)


class CodeSanitizer:
    """Pre-execution cleanup to reject obviously broken code before wasting sandbox time."""

    STRUCTURE_MARKERS = ("class ", "interface ", "enum ", "public ", "private ", "protected ")

    @staticmethod
    def remove_markdown(code: str) -> str:
        code = re.sub(r"^```[A-Za-z]*\s*\n", "", code)
        code = re.sub(r"\n?```\s*$", "", code)
        return code.replace("```", "")

    @classmethod
    def has_valid_structure(cls, code: str) -> bool:
        return any(marker in code for marker in cls.STRUCTURE_MARKERS)

    @classmethod
    def sanitize(cls, code: Optional[str]) -> str:
        """
        Strips fences and whitespace.
        Raises StructuralError if no class, interface, enum or method is declared.
        """
        code = cls.remove_markdown(code or "").strip()
        if not cls.has_valid_structure(code):
            raise StructuralError("Code does not contain a valid class or method")
        return code

    @staticmethod
    def extract_class_name(code: str) -> str:
        """First declared type, preferring the public one (javac wants the file named after it)."""
        code = _COMMENTS.sub("", code)
        match = _PUBLIC_CLASS.search(code) or _ANY_CLASS.search(code)
        if match:
            return match.group(1)
        return DEFAULT_CLASS_NAME


def _as_text(output) -> str:
    # TimeoutExpired carries bytes even when the call asked for text
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class SandboxRunner:
    """
    Compiles and runs one candidate in its own temp directory.

    Isolation is a separate OS process plus a wall-clock timeout, nothing more.
    execute() never raises; every failure is reported in the ExecutionResult.
    """

    def __init__(self, config: AgentConfig):
        self.config = config

    def execute(self, code: str) -> ExecutionResult:
        start = time.monotonic()
        logger.info("Executing code (%d chars)", len(code or ""))

        try:
            code = CodeSanitizer.sanitize(code)
        except StructuralError as e:
            return ExecutionResult(
                compiled=False,
                executed=False,
                stderr=f"[Pre-execution Filter] {e}",
                exception_message=str(e),
                exit_code=-1,
                execution_time_ms=_elapsed_ms(start),
            )

        class_name = CodeSanitizer.extract_class_name(code)
        workspace = None
        try:
            workspace = Path(tempfile.mkdtemp(prefix=f"{class_name}-"))
            source_file = workspace / f"{class_name}{SOURCE_SUFFIX}"
            source_file.write_text(code, encoding="utf-8")

            result = self._compile(workspace, class_name)
            if not result.compiled:
                logger.info("Compilation failed (exit code %s)", result.exit_code)
                logger.debug("Compiler stderr: %s", result.stderr)
            else:
                result = self._run(workspace, class_name)
                logger.info("Execution finished (exit code %s)", result.exit_code)
                logger.debug("Stdout: %s", result.stdout)
                logger.debug("Stderr: %s", result.stderr)
        except Exception as e:
            logger.exception("Sandbox error")
            result = ExecutionResult(
                compiled=False,
                executed=False,
                stderr=f"Sandbox error: {e}",
                exception_message=str(e),
                exit_code=-1,
            )
        finally:
            if workspace is not None:
                remove_workspace(workspace)

        result.execution_time_ms = _elapsed_ms(start)
        return result

    def _compile(self, workspace: Path, class_name: str) -> ExecutionResult:
        command = [*self.config.compile_command, f"{class_name}{SOURCE_SUFFIX}"]
        try:
            proc = subprocess.run(
                command,
                cwd=workspace,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=self.config.compile_timeout,
            )
        except subprocess.TimeoutExpired as e:
            # subprocess.run kills the child before re-raising
            return ExecutionResult(
                compiled=False,
                executed=False,
                stdout=_as_text(e.stdout),
                stderr=f"Compilation timed out after {self.config.compile_timeout}s.",
                exit_code=-1,
                timed_out=True,
            )
        except OSError as e:
            return ExecutionResult(
                compiled=False,
                executed=False,
                stderr=f"Compilation error: {e}",
                exception_message=str(e),
                exit_code=-1,
            )

        if proc.returncode != 0:
            return ExecutionResult(
                compiled=False,
                executed=False,
                stdout=proc.stdout,
                stderr=proc.stderr.strip() or f"Compilation failed with exit code {proc.returncode}",
                exit_code=proc.returncode,
            )

        # exit code 0 alone is not proof: the artifact has to exist
        artifact = workspace / f"{class_name}{ARTIFACT_SUFFIX}"
        if not artifact.is_file():
            return ExecutionResult(
                compiled=False,
                executed=False,
                stdout=proc.stdout,
                stderr=f"Compilation reported success but {artifact.name} not found",
                exit_code=proc.returncode,
            )

        return ExecutionResult(
            compiled=True,
            executed=False,
            stdout=proc.stdout,
            stderr=proc.stderr,
            exit_code=proc.returncode,
        )

    def _run(self, workspace: Path, class_name: str) -> ExecutionResult:
        command = [*self.config.run_command, class_name]
        try:
            proc = subprocess.run(
                command,
                cwd=workspace,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=self.config.run_timeout,
            )
        except subprocess.TimeoutExpired as e:
            return ExecutionResult(
                compiled=True,
                executed=False,
                stdout=_as_text(e.stdout),
                stderr=f"Execution timed out after {self.config.run_timeout}s.",
                exit_code=-1,
                timed_out=True,
            )
        except OSError as e:
            return ExecutionResult(
                compiled=True,
                executed=False,
                stderr=f"Execution error: {e}",
                exception_message=str(e),
                exit_code=-1,
            )

        return ExecutionResult(
            compiled=True,
            executed=proc.returncode == 0,
            stdout=proc.stdout,
            stderr=proc.stderr,
            exit_code=proc.returncode,
        )


def remove_workspace(workspace: Path) -> None:
    """Deletes the workspace bottom-up. Failures are logged, not raised."""
    if not workspace.exists():
        return
    for root, dirs, files in os.walk(workspace, topdown=False):
        for name in files:
            path = os.path.join(root, name)
            try:
                os.remove(path)
            except OSError as e:
                logger.warning("Failed to delete %s: %s", path, e)
        for name in dirs:
            path = os.path.join(root, name)
            try:
                os.rmdir(path)
            except OSError as e:
                logger.warning("Failed to delete %s: %s", path, e)
    try:
        os.rmdir(workspace)
    except OSError as e:
        logger.warning("Failed to delete workspace %s: %s", workspace, e)
