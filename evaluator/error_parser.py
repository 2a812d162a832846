"""
Turns interpreter stderr into structured error records.
"""

import builtins
import logging
import re
from pathlib import Path
from typing import List, Optional, Sequence

from taxonomy.execution import ExecutionErrorInfo

log = logging.getLogger(__name__)

# Fallback classification when stderr carries no regular exception line
ERROR_PATTERNS = {
    'MemoryError': [r'MemoryError', r'Cannot allocate memory', r'\bKilled\b', r'out of memory'],
    'RecursionError': [r'maximum recursion depth exceeded'],
    'SyntaxError': [r'SyntaxError', r'invalid syntax'],
    'IndentationError': [r'IndentationError', r'unexpected indent'],
    'NameError': [r"name '([^']*)' is not defined"],
    'TypeError': [r'unsupported operand type', r'object is not (?:callable|subscriptable|iterable)'],
    'IndexError': [r'index out of range'],
    'AttributeError': [r"has no attribute '([^']*)'"],
    'ModuleNotFoundError': [r'No module named'],
    'ZeroDivisionError': [r'division by zero'],
    'TimeoutError': [r'execution timed out', r'CPU time limit exceeded'],
}

TRACEBACK_FRAME = re.compile(r'^\s*File "(?P<file>[^"]+)", line (?P<line>\d+)')
EXCEPTION_LINE = re.compile(r'^(?P<type>[A-Za-z_][\w.]*)(?::\s?(?P<message>.*))?$')
CARET_LINE = re.compile(r'^\s*[~^]*\^[~^]*\s*$')

_EXCEPTION_SUFFIXES = ('Error', 'Exception', 'Exit', 'Interrupt', 'Warning', 'Iteration')


def _looks_like_exception(name: str) -> bool:
    short = name.rsplit('.', 1)[-1]
    builtin = getattr(builtins, short, None)
    if isinstance(builtin, type) and issubclass(builtin, BaseException):
        return True
    return short.endswith(_EXCEPTION_SUFFIXES)


def _column(stderr_lines: List[str], frame_index: int, exception_index: int,
            source_line: Optional[str]) -> Optional[int]:
    """Column (1-based) from the caret marker under the quoted code line, if any."""
    for i in range(frame_index + 1, exception_index):
        if CARET_LINE.match(stderr_lines[i]) and i > frame_index + 1:
            display = stderr_lines[i - 1]
            caret = stderr_lines[i]
            position = min(p for p in (caret.find('^'), caret.find('~')) if p >= 0)
            display_indent = len(display) - len(display.lstrip())
            source_indent = len(source_line) - len(source_line.lstrip()) if source_line else 0
            return max(1, source_indent + position - display_indent + 1)
    return None


def parse_errors(stderr: str, source_path: Optional[str] = None,
                 source_lines: Optional[Sequence[str]] = None,
                 line_offset: int = 0) -> List[ExecutionErrorInfo]:
    """Parse a Python traceback into error records.

    Args:
        stderr: Captured standard error of the child interpreter.
        source_path: Path of the executed file; only its frames give line numbers.
        source_lines: Lines of the executed file, used to align caret columns.
        line_offset: Lines injected in front of the user code (subtracted).

    Returns:
        A list with the final exception of the traceback, or a fallback
        classification when no exception line is present. Empty for empty stderr.
    """
    if not stderr or not stderr.strip():
        return []

    lines = stderr.splitlines()
    exception_index = None
    for i in range(len(lines) - 1, -1, -1):
        line = lines[i]
        if not line or line[0].isspace():
            continue
        match = EXCEPTION_LINE.match(line)
        if match and _looks_like_exception(match.group('type')):
            exception_index = i
            break

    if exception_index is None:
        return [_fallback_error(stderr)]

    match = EXCEPTION_LINE.match(lines[exception_index])
    error_type = match.group('type').rsplit('.', 1)[-1]
    message = (match.group('message') or '').strip()

    line_number = None
    frame_index = None
    target_name = Path(source_path).name if source_path else None
    for i in range(exception_index - 1, -1, -1):
        frame = TRACEBACK_FRAME.match(lines[i])
        if not frame:
            continue
        if target_name is None or Path(frame.group('file')).name == target_name:
            line_number = int(frame.group('line'))
            frame_index = i
            break

    column_number = None
    if frame_index is not None:
        source_line = None
        if source_lines and 0 < line_number <= len(source_lines):
            source_line = source_lines[line_number - 1]
        column_number = _column(lines, frame_index, exception_index, source_line)

    if line_number is not None:
        line_number -= line_offset
        if line_number < 1:
            line_number, column_number = None, None

    log.debug(f"Parsed {error_type} at line {line_number}: {message}")
    return [ExecutionErrorInfo(
        type=error_type,
        message=message,
        line_number=line_number,
        column_number=column_number,
    )]


def _fallback_error(stderr: str) -> ExecutionErrorInfo:
    last_line = next((line.strip() for line in reversed(stderr.splitlines()) if line.strip()), '')
    for error_type, patterns in ERROR_PATTERNS.items():
        for pattern in patterns:
            if re.search(pattern, stderr, re.IGNORECASE):
                return ExecutionErrorInfo(type=error_type, message=last_line)
    return ExecutionErrorInfo(type='ProcessError', message=last_line)
