"""
Pattern rule catalog.

Each rule pairs a compiled match expression with an evidence extractor.
The expression finds candidate spans on the masked source; the extractor
looks at the surrounding code and returns the evidence strings. An empty
list means the candidate is not a finding (for example, the variable was
in fact defined earlier).

The catalog is a module-level constant, built once at import time and
shared read-only by every scan.
"""

import re
import sys
from dataclasses import dataclass
from typing import Callable, List, Optional, Pattern, Tuple

from detector.source_text import SourceText, bracket_delta, indent_of

CATALOG_VERSION = "1.0.0"

Extractor = Callable[["re.Match", SourceText, int], List[str]]


@dataclass(frozen=True)
class PatternRule:
    id: str
    name: str
    category: str
    subtype: str
    severity: str
    confidence: float
    match_expression: Pattern
    evidence_extractor: Extractor
    suggested_fix: str
    description: str = ""
    spans_block: bool = False


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

INT_METHODS = {
    "bit_length", "bit_count", "to_bytes", "from_bytes", "conjugate",
    "as_integer_ratio", "is_integer", "hex", "fromhex",
}
CONTAINER_ONLY_METHODS = {
    "append", "extend", "insert", "pop", "remove", "keys", "values", "items",
    "update", "sort", "reverse", "clear", "add", "discard", "setdefault", "popitem",
}
KNOWN_THIRD_PARTY = {
    "numpy", "pandas", "scipy", "requests", "flask", "django", "fastapi",
    "pytest", "yaml", "rich", "click", "torch", "sklearn", "matplotlib",
    "aiohttp", "httpx", "pydantic", "sqlalchemy", "boto3", "jinja2", "attr",
    "attrs", "dateutil", "pytz", "six", "tqdm", "PIL", "bs4", "lxml",
}
IMPROBABLE_MARKERS = ("nonexistent", "nonexisting", "fake", "invalid", "dummy", "imaginary", "madeup", "notreal")
STDLIB_MODULES = set(getattr(sys, "stdlib_module_names", ())) | set(sys.builtin_module_names)

LARGE_RANGE_THRESHOLD = 1_000_000
LARGE_ALLOCATION_THRESHOLD = 10_000_000
LARGE_LITERAL_ELEMENTS = 50
LARGE_INDEX_THRESHOLD = 100

_NUMERIC = re.compile(r"^\d[\d_]*(?:\.\d+)?$")
_LOOP_EXIT = re.compile(r"\b(?:break|return|raise)\b|\b(?:sys\.exit|exit|quit|os\._exit)\s*\(")
_TRIVIAL_LINES = {"pass", "break", "continue", "return", "else:", "try:", "finally:", "...", ")", "]", "}", "print()"}


def _raw(source: SourceText, index: int, match) -> str:
    """Original text of a match (the masked line shares its columns)."""
    return source.lines[index][match.start():match.end()]


def _operand_kind(text: str, source: SourceText, index: int) -> Optional[str]:
    text = text.strip()
    if text[:1] in ("'", '"'):
        return "string"
    if _NUMERIC.match(text):
        return "number"
    kind = source.kind_before(text, index)
    return kind if kind in ("number", "string") else None


def _literal_int(text: str) -> Optional[int]:
    """Evaluate a small integer literal expression like 10_000, 10**7 or 1000 * 1000."""
    text = text.strip().replace("_", "")
    if text.isdigit():
        return int(text)
    match = re.fullmatch(r"(\d+)\s*\*\*\s*(\d+)", text)
    if match and int(match.group(2)) <= 64:
        return int(match.group(1)) ** int(match.group(2))
    factors = [part.strip() for part in text.split("*")]
    if len(factors) > 1 and all(part.isdigit() for part in factors):
        product = 1
        for part in factors:
            product *= int(part)
        return product
    return None


def _split_top_level(text: str) -> List[str]:
    parts, depth, current = [], 0, ""
    for ch in text:
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += ch
    parts.append(current)
    return parts


def _statement_end(source: SourceText, index: int) -> int:
    """Last line index of the statement starting at `index` (bracket continuation)."""
    depth = 0
    for i in range(index, len(source.masked)):
        line = source.masked[i]
        depth += bracket_delta(line)
        if depth <= 0 and not line.rstrip().endswith("\\"):
            return i
    return len(source.masked) - 1


def _is_guarded(source: SourceText, name: str, start: int, end: int) -> bool:
    guard = re.compile(
        rf"^\s*(?:if|elif|while|assert)\b.*\b{re.escape(name)}\b|\b{re.escape(name)}\s+is\s+not\s+None\b"
    )
    return any(guard.search(source.masked[i]) for i in range(start, end + 1))


# ---------------------------------------------------------------------------
# Evidence extractors
# ---------------------------------------------------------------------------

def _extract_type_mismatch(match, source, index):
    left = _operand_kind(match.group("left"), source, index)
    right = _operand_kind(match.group("right"), source, index)
    if {left, right} != {"number", "string"}:
        return []
    return [f"Type mismatch detected: '{_raw(source, index, match).strip()}' adds a number and a string"]


def _extract_invalid_method(match, source, index):
    name, method = match.group("name"), match.group("method")
    kind = source.kind_before(name, index)
    if kind == "number" and method not in INT_METHODS and not method.startswith("__"):
        return [f"Invalid method call: '{method}' does not exist on number '{name}'"]
    if kind == "string" and method in CONTAINER_ONLY_METHODS:
        return [f"Invalid method call: '{method}' does not exist on string '{name}'"]
    return []


def _extract_large_index(match, source, index):
    position = int(match.group("index"))
    if abs(position) < LARGE_INDEX_THRESHOLD or source.kind_before(match.group("name"), index) == "dict":
        return []
    return [f"Potential index out of bounds: {match.group('name')}[{position}] uses a hardcoded large index"]


def _extract_unchecked_key(match, source, index):
    name = match.group("name")
    if source.kind_before(name, index) != "dict":
        return []
    key = _raw(source, index, match)[len(name) + 1:-1]
    key_text = key[1:-1]
    quoted = rf"[\"']{re.escape(key_text)}[\"']"
    declared = re.compile(rf"{quoted}\s*:")
    checked = re.compile(
        rf"{quoted}\s+(?:not\s+)?in\s+{re.escape(name)}\b"
        rf"|\b{re.escape(name)}\s*\[\s*{quoted}\s*\]\s*=(?!=)"
        rf"|\b{re.escape(name)}\.(?:setdefault|update)\s*\("
    )
    assigned_at = source.last_assignment_before(name, index) or 0
    for i in range(assigned_at, index):
        raw = source.lines[i]
        if i <= _statement_end(source, assigned_at) and declared.search(raw):
            return []
        if checked.search(raw):
            return []
    if re.search(r"\bexcept\s*(?:\(?[\w\s,]*\bKeyError\b|:)", "\n".join(source.masked[index:index + 10])):
        return []
    return [f"Unchecked dictionary key access: {name}[{key}] may raise KeyError"]


def _extract_undefined_name(match, source, index):
    name = match.group(1)
    line = source.masked[index]
    if source.is_defined(name, index):
        return []
    # comprehension element before its "for" clause on a later line
    if name in source.comprehension_targets(index, source.bracketed_end(index)):
        return []
    if re.match(r"^\s*(?:import|from|global|nonlocal)\b", line):
        return []
    before = line[:match.start()].rstrip()
    after = line[match.end():]
    if before.endswith(".") or re.match(r"\s*=(?!=)", after):
        return []
    return [f"Variable '{name}' used before definition"]


def _extract_improbable_module(match, source, index):
    if match.group("imports"):
        modules = [part.strip().split(" as ")[0].strip() for part in match.group("imports").split(",")]
    else:
        modules = [match.group("from")]
    evidence = []
    for module in modules:
        top = module.split(".")[0]
        if not top or top in STDLIB_MODULES or top in KNOWN_THIRD_PARTY:
            continue
        lowered = top.lower()
        if (
            len(top) > 20
            or re.search(r"\d{3,}", top)
            or (top.isupper() and len(top) > 3)
            or any(marker in lowered for marker in IMPROBABLE_MARKERS)
        ):
            evidence.append(f"Potentially non-existent module: '{module}'")
    return evidence


def _extract_none_attribute(match, source, index):
    name = match.group("name")
    if source.kind_before(name, index) != "none":
        return []
    assigned_at = source.last_assignment_before(name, index)
    if _is_guarded(source, name, assigned_at + 1, index - 1):
        return []
    if re.search(rf"\bif\s+{re.escape(name)}\b(?!\.)|\b{re.escape(name)}\s+and\b", source.masked[index]):
        return []
    return [f"Attribute access on potentially None variable '{name}' (.{match.group('attr')})"]


def _extract_infinite_loop(match, source, index):
    body = [source.inline_body(index)] + [source.masked[i] for i in source.block_body(index)]
    if any(_LOOP_EXIT.search(line) for line in body):
        return []
    return ["Potential infinite loop: 'while True' without break or return"]


def _extract_missing_base_case(match, source, index):
    name = match.group("name")
    self_call = re.compile(rf"(?<![\w.])(?:self\.|cls\.)?{re.escape(name)}\s*\(")
    body = [source.masked[i] for i in source.block_body(index)]
    inline = source.inline_body(index)
    if inline:
        body.append(inline)
    if not any(self_call.search(line) for line in body):
        return []
    for line in body:
        if re.search(r"\b(?:if|raise)\b", line):
            return []
        if re.search(r"\breturn\b", line) and not self_call.search(line):
            return []
    return [f"Recursive function '{name}' may lack proper base case"]


def _extract_large_range(match, source, index):
    args = _split_top_level(match.group("args"))
    stop = args[1] if len(args) >= 2 else args[0]
    size = _literal_int(stop)
    if size is None or size < LARGE_RANGE_THRESHOLD:
        return []
    return [f"Large range operation: {_raw(source, index, match).strip()} iterates {size:,} times"]


def _extract_large_literal(match, source, index):
    inner = match.group(0)[1:-1]
    if not inner.strip():
        return []
    elements = [part for part in _split_top_level(inner) if part.strip()]
    if len(elements) <= LARGE_LITERAL_ELEMENTS:
        return []
    return [f"Large data structure detected: literal with {len(elements)} elements"]


def _extract_large_allocation(match, source, index):
    size = _literal_int(match.group("size"))
    if size is None or size < LARGE_ALLOCATION_THRESHOLD:
        return []
    return [f"Large memory allocation: list repeated {size:,} times"]


def _extract_always_false(match, source, index):
    return [f"Always false condition: '{match.group('keyword')} {match.group('cond')}' block never runs"]


def _extract_contradiction(match, source, index):
    if match.group("op1") == match.group("op2"):
        return []
    return [f"Contradictory condition: '{_raw(source, index, match).strip()}' can never be true"]


def _extract_zero_division(match, source, index):
    if match.group("op") == "%":
        # printf-style formatting: "%d items" % 0
        left = source.masked[index][:match.start("op")].rstrip()
        if left.endswith(("'", '"')):
            return []
        name = re.search(r"([A-Za-z_]\w*)$", left)
        if name and source.kind_before(name.group(1), index) == "string":
            return []
    return [f"Division by literal zero: '{match.group('op')} {match.group('zero')}' raises ZeroDivisionError"]


def _extract_repeated_line(match, source, index):
    current = source.lines[index].strip()
    if index == 0 or current in _TRIVIAL_LINES or source.is_blank(index):
        return []
    if source.lines[index - 1].strip() != current or source.is_blank(index - 1):
        return []
    if index >= 2 and source.lines[index - 2].strip() == current:
        return []  # reported once per run
    return [f"Repeated line detected: '{current}' appears on consecutive lines"]


def _extract_incomplete_function(match, source, index):
    if source.inline_body(index) or source.block_body(index):
        return []
    return [f"Incomplete function definition: '{match.group('name')}' has no body"]


def _extract_unreachable(match, source, index):
    end = _statement_end(source, index)
    indent = indent_of(source.masked[index])
    for i in range(end + 1, len(source.masked)):
        if source.is_blank(i):
            continue
        if indent_of(source.masked[i]) == indent and not source.masked[i].strip().startswith(("'", '"')):
            return [f"Unreachable code after {match.group('stmt')}: line {i + 1} can never run"]
        return []
    return []


def _extract_assert_false(match, source, index):
    return ["Assertion always fails: 'assert False' raises AssertionError"]


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

_OPERAND = r"(?<![\w.])\d[\d_]*(?:\.\d+)?(?![\w.])|(?<![\w.])[A-Za-z_]\w*(?![\w.(\[])|\"[^\"\n]*\"|'[^'\n]*'"

PATTERN_CATALOG: Tuple[PatternRule, ...] = (
    PatternRule(
        id="type_mismatch_string_number",
        name="String/number type mismatch",
        category="mapping",
        subtype="data_compliance",
        severity="high",
        confidence=0.9,
        match_expression=re.compile(rf"(?P<left>{_OPERAND})\s*\+\s*(?P<right>{_OPERAND})"),
        evidence_extractor=_extract_type_mismatch,
        suggested_fix="Convert operands explicitly, e.g. str(number) + text or int(text) + number",
        description="Adds a number to a string, which raises TypeError at runtime",
    ),
    PatternRule(
        id="invalid_method_on_primitive",
        name="Method call on primitive",
        category="mapping",
        subtype="data_compliance",
        severity="high",
        confidence=0.85,
        match_expression=re.compile(r"(?<![\w.])(?P<name>[A-Za-z_]\w*)\.(?P<method>[A-Za-z_]\w*)\s*\("),
        evidence_extractor=_extract_invalid_method,
        suggested_fix="Check the variable's type; use a list or dict when container methods are needed",
        description="Calls a method that the variable's type does not provide",
    ),
    PatternRule(
        id="hardcoded_large_index",
        name="Hardcoded large index",
        category="mapping",
        subtype="structure_access",
        severity="medium",
        confidence=0.7,
        match_expression=re.compile(r"(?<![\w.])(?P<name>[A-Za-z_]\w*)\[(?P<index>-?\d+)\]"),
        evidence_extractor=_extract_large_index,
        suggested_fix="Check len() before indexing or iterate over the sequence instead",
        description="Indexes a sequence at a hardcoded position that is likely out of range",
    ),
    PatternRule(
        id="unchecked_dict_access",
        name="Unchecked dictionary key access",
        category="mapping",
        subtype="structure_access",
        severity="medium",
        confidence=0.7,
        match_expression=re.compile(
            r"(?<![\w.])(?P<name>[A-Za-z_]\w*)\[(?P<key>\"[^\"\n]*\"|'[^'\n]*')\](?!\s*=(?!=))"
        ),
        evidence_extractor=_extract_unchecked_key,
        suggested_fix="Use dict.get(key, default) or test 'key in mapping' first",
        description="Reads a dictionary key that is neither declared nor checked",
    ),
    PatternRule(
        id="undefined_name",
        name="Use before definition",
        category="naming",
        subtype="identity",
        severity="high",
        confidence=0.85,
        match_expression=re.compile(r"(?<![\w.])([A-Za-z_]\w*)\b"),
        evidence_extractor=_extract_undefined_name,
        suggested_fix="Define or import the name before it is used",
        description="Uses a name that is never bound before this point",
    ),
    PatternRule(
        id="improbable_module",
        name="Improbable module import",
        category="naming",
        subtype="external_source",
        severity="high",
        confidence=0.75,
        match_expression=re.compile(
            r"^\s*(?:import\s+(?P<imports>[\w.]+(?:\s+as\s+\w+)?(?:\s*,\s*[\w.]+(?:\s+as\s+\w+)?)*)"
            r"|from\s+(?P<from>[\w.]+)\s+import\b)"
        ),
        evidence_extractor=_extract_improbable_module,
        suggested_fix="Verify the package exists on the index and is a declared dependency",
        description="Imports a module whose name looks fabricated",
    ),
    PatternRule(
        id="none_attribute_access",
        name="Attribute access on None",
        category="naming",
        subtype="identity",
        severity="high",
        confidence=0.8,
        match_expression=re.compile(r"(?<![\w.])(?P<name>[A-Za-z_]\w*)\.(?P<attr>[A-Za-z_]\w*)"),
        evidence_extractor=_extract_none_attribute,
        suggested_fix="Assign a real object first or guard the access with 'if value is not None'",
        description="Accesses an attribute of a variable that was explicitly set to None",
    ),
    PatternRule(
        id="infinite_while_loop",
        name="Infinite loop",
        category="resource",
        subtype="computational_boundary",
        severity="critical",
        confidence=0.9,
        match_expression=re.compile(r"^\s*while\s+(?:True|1)\s*:"),
        evidence_extractor=_extract_infinite_loop,
        suggested_fix="Add a break condition or bound the loop with a counter",
        description="A 'while True' loop with no visible way out",
        spans_block=True,
    ),
    PatternRule(
        id="recursion_without_base_case",
        name="Recursion without base case",
        category="resource",
        subtype="physical_constraint",
        severity="critical",
        confidence=0.8,
        match_expression=re.compile(r"^\s*(?:async\s+)?def\s+(?P<name>[A-Za-z_]\w*)\s*\("),
        evidence_extractor=_extract_missing_base_case,
        suggested_fix="Add a base case that returns without recursing",
        description="A recursive function with no detectable termination condition",
        spans_block=True,
    ),
    PatternRule(
        id="large_range",
        name="Oversized iteration range",
        category="resource",
        subtype="computational_boundary",
        severity="high",
        confidence=0.8,
        match_expression=re.compile(r"\brange\s*\((?P<args>[^()]*)\)"),
        evidence_extractor=_extract_large_range,
        suggested_fix="Process the data in batches or use a generator with a realistic bound",
        description="Iterates over a range large enough to stall execution",
    ),
    PatternRule(
        id="large_literal",
        name="Large literal data structure",
        category="resource",
        subtype="physical_constraint",
        severity="medium",
        confidence=0.7,
        match_expression=re.compile(r"\[[^\[\]]*\]|\{[^{}]*\}"),
        evidence_extractor=_extract_large_literal,
        suggested_fix="Load large data from a file or generate it instead of inlining it",
        description="Inlines a literal with an unusually large number of elements",
    ),
    PatternRule(
        id="large_allocation",
        name="Oversized allocation",
        category="resource",
        subtype="physical_constraint",
        severity="high",
        confidence=0.8,
        match_expression=re.compile(r"\[[^\[\]]*\]\s*\*\s*(?P<size>\d[\d_]*(?:\s*\*\*?\s*\d[\d_]*)*)"),
        evidence_extractor=_extract_large_allocation,
        suggested_fix="Allocate lazily or use a generator instead of a huge list",
        description="Allocates a list large enough to exhaust memory",
    ),
    PatternRule(
        id="always_false_condition",
        name="Always false condition",
        category="logic",
        subtype="logic_deviation",
        severity="medium",
        confidence=0.85,
        match_expression=re.compile(r"^\s*(?P<keyword>if|elif|while)\s+(?P<cond>False|0|None|not\s+True)\s*:"),
        evidence_extractor=_extract_always_false,
        suggested_fix="Remove the dead branch or replace the constant with the intended condition",
        description="A branch guarded by a constant false condition",
    ),
    PatternRule(
        id="contradictory_condition",
        name="Contradictory condition",
        category="logic",
        subtype="logic_deviation",
        severity="high",
        confidence=0.9,
        match_expression=re.compile(
            r"(?<![\w.])(?P<a>[\w.]+)\s*(?P<op1>==|!=)\s*(?P<b>[\w.]+)\s+and\s+(?P=a)\s*(?P<op2>==|!=)\s*(?P=b)(?![\w.])"
        ),
        evidence_extractor=_extract_contradiction,
        suggested_fix="Rewrite the condition; 'a == b and a != b' is never true",
        description="A condition that requires two values to be both equal and different",
    ),
    PatternRule(
        id="division_by_zero_literal",
        name="Division by literal zero",
        category="logic",
        subtype="logic_deviation",
        severity="high",
        confidence=0.9,
        match_expression=re.compile(r"(?P<op>//|/|%)=?\s*(?P<zero>0+(?:\.0*)?)(?![\w.])"),
        evidence_extractor=_extract_zero_division,
        suggested_fix="Guard the divisor or use the intended non-zero value",
        description="Divides by a literal zero",
    ),
    PatternRule(
        id="repeated_line",
        name="Consecutive duplicate line",
        category="logic",
        subtype="logic_breakdown",
        severity="medium",
        confidence=0.75,
        match_expression=re.compile(r"^\s*\S.*$"),
        evidence_extractor=_extract_repeated_line,
        suggested_fix="Remove the duplicated statement or use a loop if repetition is intended",
        description="The same statement appears twice in a row",
    ),
    PatternRule(
        id="incomplete_function",
        name="Empty function body",
        category="logic",
        subtype="logic_breakdown",
        severity="high",
        confidence=0.85,
        match_expression=re.compile(r"^\s*(?:async\s+)?def\s+(?P<name>[A-Za-z_]\w*)\s*\(.*\)\s*(?:->[^:]+)?:\s*$"),
        evidence_extractor=_extract_incomplete_function,
        suggested_fix="Implement the function body or mark it with 'pass' / 'raise NotImplementedError'",
        description="A function definition with no body",
    ),
    PatternRule(
        id="unreachable_after_return",
        name="Code after unconditional exit",
        category="logic",
        subtype="logic_breakdown",
        severity="medium",
        confidence=0.8,
        match_expression=re.compile(r"^\s*(?P<stmt>return|raise|break|continue)\b"),
        evidence_extractor=_extract_unreachable,
        suggested_fix="Remove the dead code or move it before the exit statement",
        description="Statements that follow an unconditional return/raise/break/continue",
    ),
    PatternRule(
        id="assert_false",
        name="Assertion that always fails",
        category="logic",
        subtype="logic_breakdown",
        severity="high",
        confidence=0.85,
        match_expression=re.compile(r"^\s*assert\s+(?:False|0)\b"),
        evidence_extractor=_extract_assert_false,
        suggested_fix="Replace the placeholder assertion with the intended check",
        description="An assertion on a constant false value",
    ),
)

_RULES_BY_ID = {rule.id: rule for rule in PATTERN_CATALOG}


def get_patterns() -> List[PatternRule]:
    """Return all rules in catalog order (a new list; the rules are immutable)."""
    return list(PATTERN_CATALOG)


def get_pattern(rule_id: str) -> Optional[PatternRule]:
    return _RULES_BY_ID.get(rule_id)


def get_patterns_by_category(category: str) -> List[PatternRule]:
    return [rule for rule in PATTERN_CATALOG if rule.category == category]
