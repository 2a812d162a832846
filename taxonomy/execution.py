"""
Value objects exchanged with the execution sandbox.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_MAX_MEMORY_MB = 128
DEFAULT_MAX_EXECUTION_TIME_MS = 5000
DEFAULT_MAX_CPU_CORES = 1
DEFAULT_MAX_CODE_LENGTH = 100000


@dataclass
class ResourceLimits:
    """Memory/time/CPU budget for a single sandbox run."""
    max_memory_mb: int = DEFAULT_MAX_MEMORY_MB
    max_execution_time_ms: int = DEFAULT_MAX_EXECUTION_TIME_MS
    max_cpu_cores: int = DEFAULT_MAX_CPU_CORES

    def __post_init__(self):
        if self.max_memory_mb <= 0:
            raise ValueError(f"max_memory_mb must be positive, got {self.max_memory_mb}")
        if self.max_execution_time_ms <= 0:
            raise ValueError(f"max_execution_time_ms must be positive, got {self.max_execution_time_ms}")
        if self.max_cpu_cores <= 0:
            raise ValueError(f"max_cpu_cores must be positive, got {self.max_cpu_cores}")

    @classmethod
    def from_config(cls, sandbox_config: Dict[str, Any]) -> "ResourceLimits":
        """Build limits from the dict returned by ConfigLoader.get_sandbox_config()."""
        return cls(
            max_memory_mb=sandbox_config.get("max_memory_mb", DEFAULT_MAX_MEMORY_MB),
            max_execution_time_ms=sandbox_config.get("max_execution_time_ms", DEFAULT_MAX_EXECUTION_TIME_MS),
            max_cpu_cores=sandbox_config.get("max_cpu_cores", DEFAULT_MAX_CPU_CORES),
        )

    def to_dict(self) -> Dict:
        return {
            "maxMemoryMB": self.max_memory_mb,
            "maxExecutionTimeMs": self.max_execution_time_ms,
            "maxCpuCores": self.max_cpu_cores,
        }


@dataclass(frozen=True)
class ExecutionErrorInfo:
    """One structured error parsed from the interpreter's stderr."""
    type: str
    message: str
    line_number: Optional[int] = None
    column_number: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "type": self.type,
            "message": self.message,
            "lineNumber": self.line_number,
            "columnNumber": self.column_number,
        }


@dataclass(frozen=True)
class ResourceUsage:
    memory_mb: float = 0.0
    execution_time_ms: float = 0.0
    cpu_usage: float = 0.0
    peak_memory_mb: Optional[float] = None
    system_calls: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "memoryMB": round(self.memory_mb, 3),
            "executionTimeMs": round(self.execution_time_ms, 3),
            "cpuUsage": round(self.cpu_usage, 2),
            "peakMemoryMB": round(self.peak_memory_mb, 3) if self.peak_memory_mb is not None else None,
            "systemCalls": self.system_calls,
        }


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of exactly one sandbox run. Never reused across runs."""
    success: bool
    output: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    timed_out: bool = False
    errors: Tuple[ExecutionErrorInfo, ...] = ()
    resource_usage: ResourceUsage = field(default_factory=ResourceUsage)
    security_flags: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "errors", tuple(self.errors))
        object.__setattr__(self, "security_flags", tuple(self.security_flags))

    @property
    def error_types(self) -> List[str]:
        return [error.type for error in self.errors]

    def to_dict(self) -> Dict:
        return {
            "success": self.success,
            "exitCode": self.exit_code,
            "timedOut": self.timed_out,
            "output": self.output,
            "stderr": self.stderr,
            "errors": [error.to_dict() for error in self.errors],
            "resourceUsage": self.resource_usage.to_dict(),
            "securityFlags": list(self.security_flags),
        }


@dataclass
class TestCase:
    """A single run of the code under test with an injected `test_input`.

    Attributes:
        description: Human readable label, written into the prepared source.
        input: Any literal value; bound to `test_input` before the code runs.
        expected_output: When set, a module-level `result` must equal it.
        timeout_ms: Per-test override of the sandbox time limit.
        critical: Stop running further cases when this one fails.
    """
    __test__ = False  # not a pytest test class

    description: str
    input: Any = None
    expected_output: Any = None
    timeout_ms: Optional[int] = None
    critical: bool = False

    def to_dict(self) -> Dict:
        return asdict(self)
