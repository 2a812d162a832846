"""
Code Structure Analyzer - a cheap structural snapshot used as context for
the detectors and the report. It is not a detector itself.
"""

import logging
import re
from typing import List

from detector.source_text import SourceText, indent_of
from taxonomy.models import CodeStructure

log = logging.getLogger(__name__)

_FUNCTION = re.compile(r"^\s*(?:async\s+)?def\s+([A-Za-z_]\w*)")
_CLASS = re.compile(r"^\s*class\s+([A-Za-z_]\w*)")
_VARIABLE = re.compile(r"^\s*([A-Za-z_]\w*)\s*(?::[^=]+)?=(?!=)")
_IMPORT = re.compile(r"^\s*import\s+([\w.,\s]+?)\s*$")
_FROM_IMPORT = re.compile(r"^\s*from\s+([\w.]+)\s+import\b")
_LOOP = re.compile(r"^\s*(?:async\s+)?(?:for|while)\b")
_CONDITIONAL = re.compile(r"^\s*(?:if|elif)\b")
_TRY = re.compile(r"^\s*try\s*:")
_EXCEPT = re.compile(r"^\s*except\b")
_BOOLEAN_OP = re.compile(r"\b(?:and|or)\b")
_INLINE_BRANCH = re.compile(r"\S.*\b(?:if|for)\b")
_ASYNC = re.compile(r"\basync\b|\bawait\b")


def _unique(names: List[str]) -> tuple:
    return tuple(dict.fromkeys(names))


def analyze_code_structure(code: str) -> CodeStructure:
    """Build a CodeStructure for `code`.

    Never raises: an internal failure yields an empty structure so callers
    can carry on with reduced context.
    """
    try:
        return _analyze(code)
    except Exception as e:
        log.warning(f"Code structure analysis failed: {e}")
        return CodeStructure()


def _analyze(code: str) -> CodeStructure:
    source = SourceText(code)
    functions, classes, variables, imports = [], [], [], []
    loops = conditionals = try_blocks = excepts = branches = 0
    nesting_depth = 0
    stack: List[int] = []

    for line in source.masked:
        if not line.strip():
            continue

        match = _FUNCTION.match(line)
        if match:
            functions.append(match.group(1))
        match = _CLASS.match(line)
        if match:
            classes.append(match.group(1))
        match = _VARIABLE.match(line)
        if match:
            variables.append(match.group(1))

        match = _IMPORT.match(line)
        if match:
            for part in match.group(1).split(","):
                module = part.strip().split(" as ")[0].strip()
                if module:
                    imports.append(module)
        match = _FROM_IMPORT.match(line)
        if match:
            imports.append(match.group(1))

        if _LOOP.match(line):
            loops += 1
        elif _CONDITIONAL.match(line):
            conditionals += 1
        elif _INLINE_BRANCH.search(line.strip()[1:]):
            # comprehension or conditional expression inside a statement
            branches += 1
        if _TRY.match(line):
            try_blocks += 1
        if _EXCEPT.match(line):
            excepts += 1
        branches += len(_BOOLEAN_OP.findall(line))

        indent = indent_of(line)
        while stack and stack[-1] >= indent:
            stack.pop()
        if line.rstrip().endswith(":"):
            stack.append(indent)
            nesting_depth = max(nesting_depth, len(stack))

    lines_of_code = sum(
        1 for line in source.lines if line.strip() and not line.strip().startswith("#")
    )

    return CodeStructure(
        functions=_unique(functions),
        classes=_unique(classes),
        variables=_unique(variables),
        imports=_unique(imports),
        loops=loops,
        conditionals=conditionals,
        try_blocks=try_blocks,
        cyclomatic_complexity=1 + loops + conditionals + excepts + branches,
        lines_of_code=lines_of_code,
        nesting_depth=nesting_depth,
        has_async_code=bool(_ASYNC.search("\n".join(source.masked))),
        has_error_handling=try_blocks > 0,
    )
