import logging
import re
from typing import List, Pattern, Tuple

from data_types import SafetyVerdict

# ==========================================
# Safety Gate: pre-execution denylist
# ==========================================
#
# This is a textual denylist, NOT a security boundary. It matches substrings
# and regexes over raw source, so anything that hides an identifier
# (string concatenation, unicode escapes, fully qualified aliases) gets past
# it. The real containment is the separate process and timeout in
# sandbox.SandboxRunner. Stronger isolation belongs behind the same
# check()/execute() interfaces.

logger = logging.getLogger(__name__)

# (matcher, description), evaluated in order, all of them, every time
FORBIDDEN_PATTERNS: List[Tuple[Pattern, str]] = [
    (re.compile(r"Runtime\.getRuntime\(\)", re.IGNORECASE), "process execution via Runtime.getRuntime()"),
    (re.compile(r"ProcessBuilder", re.IGNORECASE), "process execution via ProcessBuilder"),
    (re.compile(r"\bexec\b", re.IGNORECASE), "command execution (exec)"),
    (re.compile(r"FileWriter|FileReader|FileOutputStream|FileInputStream", re.IGNORECASE),
     "filesystem I/O (File streams)"),
    (re.compile(r"java\.nio\.file|\bFiles\.|\bPaths\.get", re.IGNORECASE), "filesystem I/O (java.nio.file)"),
    (re.compile(r"Socket|ServerSocket|\bURL\b|HttpURLConnection|HttpClient", re.IGNORECASE), "network I/O"),
    (re.compile(r"System\.exit|Runtime\.getRuntime\(\)\.halt", re.IGNORECASE), "explicit process termination"),
    (re.compile(r"Class\.forName", re.IGNORECASE), "reflection (Class.forName)"),
    (re.compile(r"ClassLoader", re.IGNORECASE), "dynamic class loading (ClassLoader)"),
    (re.compile(r"java\.lang\.reflect", re.IGNORECASE), "reflection (java.lang.reflect)"),
    (re.compile(r"Thread\.sleep|TimeUnit\.\w+\.sleep", re.IGNORECASE), "blocking sleep"),
]

_INFINITE_LOOP = re.compile(r"while\s*\(\s*true\s*\)|for\s*\(\s*;\s*;\s*\)", re.IGNORECASE)
_LOOP_EXIT = re.compile(r"\b(break|return|throw)\b")

# How many lines after an infinite-condition loop header may hold its exit
LOOP_EXIT_WINDOW = 10


class SafetyGate:
    def __init__(self, patterns: List[Tuple[Pattern, str]] = None, loop_exit_window: int = LOOP_EXIT_WINDOW):
        self.patterns = FORBIDDEN_PATTERNS if patterns is None else patterns
        self.loop_exit_window = loop_exit_window

    def check(self, source: str) -> SafetyVerdict:
        """Returns a verdict listing every rule the source trips. Never raises."""
        source = source or ""
        violations = []

        for pattern, description in self.patterns:
            if pattern.search(source):
                violations.append(f"Forbidden pattern detected: {description}")

        if self._has_unbounded_loop(source):
            violations.append("Potential infinite loop detected")

        if violations:
            logger.debug("Safety violations: %s", violations)
        return SafetyVerdict(violations=violations)

    def _has_unbounded_loop(self, source: str) -> bool:
        lines = source.split("\n")
        for i, line in enumerate(lines):
            if not _INFINITE_LOOP.search(line):
                continue
            window = lines[i:i + self.loop_exit_window]
            if not any(_LOOP_EXIT.search(candidate) for candidate in window):
                return True
        return False
