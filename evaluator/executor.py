"""
Execution sandbox that runs candidate code in a fresh, resource-limited
interpreter process.
"""

import json
import logging
import math
import os
import re
import signal
import subprocess
import sys
import tempfile
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from evaluator.error_parser import parse_errors
from guardian.safety import SafetyAssessor
from taxonomy.execution import (
    DEFAULT_MAX_CODE_LENGTH,
    ExecutionErrorInfo,
    ExecutionResult,
    ResourceLimits,
    ResourceUsage,
    TestCase,
)

log = logging.getLogger(__name__)

BOOTSTRAP = Path(__file__).parent / "sandbox_bootstrap.py"

# stderr of a child that ran out of memory before it was killed
MEMORY_EXHAUSTION = re.compile(r"MemoryError|Cannot allocate memory|out of memory", re.IGNORECASE)

SUPPORTED_LANGUAGES = {
    "python": "python",
    "py": "python",
    "python3": "python",
}


def normalize_language(language: str) -> Optional[str]:
    """Return the canonical language name, or None when unsupported."""
    return SUPPORTED_LANGUAGES.get((language or "").strip().lower())


def _child_env() -> Dict[str, str]:
    env = {
        "PATH": os.environ.get("PATH", os.defpath),
        "MALLOC_ARENA_MAX": "1",
        "LANG": "C.UTF-8",
    }
    if "SYSTEMROOT" in os.environ:  # required by the interpreter on Windows
        env["SYSTEMROOT"] = os.environ["SYSTEMROOT"]
    return env


def _failed(error_type: str, message: str, security_flags: Sequence[str] = ()) -> ExecutionResult:
    return ExecutionResult(
        success=False,
        errors=(ExecutionErrorInfo(type=error_type, message=message),),
        security_flags=tuple(security_flags),
    )


def prepare_test_code(code: str, test_case: TestCase) -> Tuple[str, int]:
    """Wrap `code` for one test case.

    Returns:
        (source, line_offset): the source to run and the number of lines
        injected in front of the user code.
    """
    description = " ".join(str(test_case.description).split())
    header = [
        f"# Test case: {description}",
        f"test_input = {test_case.input!r}",
    ]
    source = "\n".join(header) + "\n" + code
    if test_case.expected_output is not None:
        expected = repr(test_case.expected_output)
        source += (
            "\n\nif 'result' in globals() and result != " + expected + ":\n"
            "    raise AssertionError('Expected ' + repr(" + expected + ") + ', got ' + repr(result))\n"
        )
    return source, len(header)


class ExecutionSandbox:
    """Executes code attempts in isolated subprocesses and reports the outcome.

    Every run gets a new interpreter process and a new temporary working
    directory; nothing is pooled or reused, so one instance may serve
    concurrent analyses.
    """

    def __init__(self, resource_limits: Optional[ResourceLimits] = None,
                 max_code_length: int = DEFAULT_MAX_CODE_LENGTH,
                 interpreter: Optional[str] = None,
                 safety_assessor: Optional[SafetyAssessor] = None):
        self._limits = resource_limits or ResourceLimits()
        self.max_code_length = max_code_length
        self.interpreter = interpreter or sys.executable
        self.safety_assessor = safety_assessor or SafetyAssessor()

    @classmethod
    def from_config(cls, sandbox_config: Dict[str, Any]) -> "ExecutionSandbox":
        return cls(
            resource_limits=ResourceLimits.from_config(sandbox_config),
            max_code_length=sandbox_config.get("max_code_length", DEFAULT_MAX_CODE_LENGTH),
            interpreter=sandbox_config.get("interpreter") or None,
        )

    def get_resource_limits(self) -> ResourceLimits:
        return replace(self._limits)

    def set_resource_limits(self, **overrides) -> ResourceLimits:
        """Update the default limits, e.g. set_resource_limits(max_memory_mb=256)."""
        self._limits = replace(self._limits, **overrides)
        log.debug(f"Sandbox limits updated: {self._limits}")
        return self.get_resource_limits()

    def check_interpreter_availability(self) -> bool:
        """Whether the configured interpreter can be started at all."""
        try:
            completed = subprocess.run(
                [self.interpreter, "-I", "-c", "import sys; print(sys.version)"],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (OSError, subprocess.SubprocessError) as e:
            log.warning(f"Interpreter '{self.interpreter}' is not available: {e}")
            return False
        return completed.returncode == 0

    def validate_input(self, code: Optional[str], language: str) -> Optional[str]:
        """Return a description of why `code` cannot run, or None when it can."""
        if code is None or code == "":
            return "Code cannot be empty"
        if normalize_language(language) is None:
            return f"Language '{language}' not supported. Only Python is currently supported."
        if len(code) > self.max_code_length:
            return f"Code is too long ({len(code)} characters, maximum {self.max_code_length})"
        return None

    def execute(self, code: str, language: str = "python",
                limits: Optional[ResourceLimits] = None) -> ExecutionResult:
        """Execute the provided code and return the results.

        Args:
            code (str): The code to execute.
            language (str): Language tag; only Python (and its aliases) is supported.
            limits (ResourceLimits): Per-call limits; defaults to the sandbox limits.

        Returns:
            ExecutionResult: Never raises for bad input or a failing program;
            problems are reported as typed errors on a failed result.
        """
        problem = self.validate_input(code, language)
        if problem:
            log.debug(f"Execution rejected: {problem}")
            return _failed("ValidationError", problem)

        security_flags = self.safety_assessor.validate_safety(code).risks
        return self._run(code, limits or self._limits, security_flags=security_flags)

    def execute_with_tests(self, code: str, test_cases: Sequence[TestCase],
                           language: str = "python") -> List[ExecutionResult]:
        """Run `code` once per test case, stopping after a failed critical case."""
        problem = self.validate_input(code, language)
        if problem:
            return [_failed("ValidationError", problem)]

        security_flags = self.safety_assessor.validate_safety(code).risks
        results = []
        for number, test_case in enumerate(test_cases, start=1):
            source, offset = prepare_test_code(code, test_case)
            limits = self._limits
            if test_case.timeout_ms:
                limits = replace(limits, max_execution_time_ms=test_case.timeout_ms)

            result = self._run(source, limits, line_offset=offset, security_flags=security_flags)
            results.append(result)

            if test_case.critical and not result.success:
                remaining = len(test_cases) - number
                log.info(f"Critical test '{test_case.description}' failed; skipping {remaining} remaining case(s)")
                break
        return results

    def _run(self, source: str, limits: ResourceLimits, line_offset: int = 0,
             security_flags: Sequence[str] = ()) -> ExecutionResult:
        timeout_s = limits.max_execution_time_ms / 1000
        cpu_seconds = math.ceil(timeout_s) + 1

        with tempfile.TemporaryDirectory(prefix="halguard_") as workdir:
            target = Path(workdir) / "main.py"
            target.write_text(source, encoding="utf-8")
            usage_file = Path(workdir) / ".usage.json"

            command = [
                self.interpreter, "-I", "-u", str(BOOTSTRAP),
                str(target), str(usage_file),
                str(limits.max_memory_mb), str(cpu_seconds), str(limits.max_cpu_cores),
            ]

            start_time = time.perf_counter()
            try:
                process = subprocess.Popen(
                    command,
                    cwd=workdir,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    env=_child_env(),
                    start_new_session=(os.name == "posix"),
                )
            except OSError as e:
                log.error(f"Failed to start sandbox interpreter '{self.interpreter}': {e}")
                return _failed("ExecutionError", f"Failed to start interpreter: {e}", security_flags)

            timed_out = False
            try:
                stdout, stderr = process.communicate(timeout=timeout_s)
            except subprocess.TimeoutExpired:
                timed_out = True
                self._kill(process)
                stdout, stderr = process.communicate()

            elapsed_ms = (time.perf_counter() - start_time) * 1000
            usage = self._read_usage(usage_file, elapsed_ms)

        exit_code = process.returncode
        errors: List[ExecutionErrorInfo] = []
        if timed_out:
            errors.append(ExecutionErrorInfo(
                type="TimeoutError",
                message=f"Execution timed out after {limits.max_execution_time_ms}ms",
            ))
        elif exit_code != 0:
            errors = parse_errors(stderr, str(target), source.split("\n"), line_offset)
            if not errors or (exit_code < 0 and errors[0].type == "ProcessError"):
                errors = [self._signal_error(exit_code, stderr)]

        success = exit_code == 0 and not timed_out
        log.debug(f"Sandbox run finished: exit={exit_code} timed_out={timed_out} in {elapsed_ms:.0f}ms")
        return ExecutionResult(
            success=success,
            output=stdout.rstrip(),
            stderr=stderr.rstrip(),
            exit_code=exit_code,
            timed_out=timed_out,
            errors=tuple(errors),
            resource_usage=usage,
            security_flags=tuple(security_flags),
        )

    @staticmethod
    def _kill(process: subprocess.Popen):
        """Forcibly stop the child and anything it spawned."""
        if os.name == "posix":
            try:
                os.killpg(process.pid, signal.SIGKILL)
                return
            except ProcessLookupError:
                return
            except OSError as e:
                log.warning(f"Could not kill sandbox process group {process.pid}: {e}")
        process.kill()

    @staticmethod
    def _read_usage(usage_file: Path, elapsed_ms: float) -> ResourceUsage:
        """Resource usage reported by the child; wall time only when unavailable."""
        try:
            data = json.loads(usage_file.read_text())
        except (OSError, ValueError):
            return ResourceUsage(execution_time_ms=elapsed_ms)

        cpu_time_ms = data.get("cpuTimeMs") or 0.0
        return ResourceUsage(
            memory_mb=data.get("memoryMB") or 0.0,
            execution_time_ms=elapsed_ms,
            cpu_usage=min(100.0, cpu_time_ms / elapsed_ms * 100) if elapsed_ms > 0 else 0.0,
            peak_memory_mb=data.get("peakMemoryMB"),
        )

    @staticmethod
    def _signal_error(exit_code: int, stderr: str) -> ExecutionErrorInfo:
        if exit_code < 0:
            try:
                name = signal.Signals(-exit_code).name
            except ValueError:
                name = f"signal {-exit_code}"
            if name == "SIGXCPU":
                return ExecutionErrorInfo(type="TimeoutError", message="CPU time limit exceeded")
            if name == "SIGKILL" and MEMORY_EXHAUSTION.search(stderr):
                return ExecutionErrorInfo(type="MemoryError", message="Process was killed (memory limit exceeded)")
            return ExecutionErrorInfo(type="ProcessError", message=f"Process terminated by {name}")
        last_line = next((line for line in reversed(stderr.splitlines()) if line.strip()), "")
        return ExecutionErrorInfo(type="ProcessError", message=last_line or f"Process exited with code {exit_code}")
