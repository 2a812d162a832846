"""
Line-oriented view of a piece of Python source used by the static detectors.

All scanning happens on a *masked* copy of the source in which the contents
of string literals and comments are replaced by spaces. Quote delimiters are
kept so rules can still see that a literal is present, and every character
keeps its original line/column position.
"""

import builtins
import keyword
import re
from typing import Dict, List, Optional, Set, Tuple

IDENTIFIER = re.compile(r"(?<![\w.])([A-Za-z_]\w*)\b")
STRING_PREFIX_CHARS = set("rbfuRBFU")

# Names that are always available without a binding in the code
ALWAYS_DEFINED = (
    set(dir(builtins))
    | set(keyword.kwlist)
    | set(getattr(keyword, "softkwlist", []))
    | {"__file__", "__name__", "__doc__", "__builtins__", "__annotations__", "__spec__"}
)

_DEF_HEADER = re.compile(r"^\s*(?:async\s+)?def\s+([A-Za-z_]\w*)\s*\(")
_CLASS_HEADER = re.compile(r"^\s*class\s+([A-Za-z_]\w*)")
_IMPORT = re.compile(r"^\s*import\s+(.+)$")
_FROM_IMPORT = re.compile(r"^\s*from\s+[\w.]+\s+import\s+\(?([^)]*)\)?")
_ASSIGN_TARGETS = re.compile(r"^\s*([A-Za-z_][\w\s,*]*?)\s*(?::[^=]+)?=(?!=)")
_ANNOTATED_NAME = re.compile(r"^\s*([A-Za-z_]\w*)\s*:\s*[\w\[\], .]+$")
_FOR_TARGETS = re.compile(r"\bfor\s+([\w\s,()*]+?)\s+in\b")
_AS_NAME = re.compile(r"\bas\s+([A-Za-z_]\w*)")
_WALRUS = re.compile(r"([A-Za-z_]\w*)\s*:=")
_LAMBDA_PARAMS = re.compile(r"\blambda\s+([^:]*):")
_GLOBAL = re.compile(r"^\s*(?:global|nonlocal)\s+(.+)$")
_SIMPLE_ASSIGN = re.compile(r"^\s*([A-Za-z_]\w*)\s*(?::[^=]+)?=(?!=)\s*(.+?)\s*$")

_NUMBER_LITERAL = re.compile(r"^-?\d[\d_]*(?:\.\d+)?(?:[eE][+-]?\d+)?$")


def mask_source(code: str) -> List[str]:
    """Return the source lines with string contents and comments blanked out."""
    out = list(code)
    i, n = 0, len(code)
    while i < n:
        ch = code[i]
        if ch == "#":
            while i < n and code[i] != "\n":
                out[i] = " "
                i += 1
            continue
        if ch in "'\"":
            # Blank a string prefix like f"..." or rb'...'
            j = i - 1
            while j >= 0 and code[j] in STRING_PREFIX_CHARS and i - j <= 2:
                j -= 1
            if j < i - 1 and (j < 0 or not (code[j].isalnum() or code[j] == "_")):
                for k in range(j + 1, i):
                    out[k] = " "
            quote = code[i:i + 3] if code[i:i + 3] in ('"""', "'''") else ch
            i += len(quote)
            while i < n:
                if code[i] == "\\" and i + 1 < n:
                    if code[i + 1] != "\n":
                        out[i + 1] = " "
                    out[i] = " "
                    i += 2
                    continue
                if code.startswith(quote, i):
                    i += len(quote)
                    break
                if code[i] == "\n":
                    if len(quote) == 1:
                        break  # unterminated single-line string
                else:
                    out[i] = " "
                i += 1
            continue
        i += 1
    return "".join(out).split("\n")


def indent_of(line: str) -> int:
    return len(line) - len(line.lstrip())


def bracket_delta(line: str) -> int:
    """Opened minus closed brackets on one masked line."""
    return sum(line.count(ch) for ch in "([{") - sum(line.count(ch) for ch in ")]}")


def _names_in(fragment: str) -> List[str]:
    return [name for name in re.findall(r"[A-Za-z_]\w*", fragment) if not keyword.iskeyword(name)]


def _parameter_names(signature: str) -> List[str]:
    names = []
    depth = 0
    piece = ""
    for ch in signature:
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            if depth == 0:
                break
            depth -= 1
        if ch == "," and depth == 0:
            names.append(piece)
            piece = ""
        else:
            piece += ch
    names.append(piece)
    result = []
    for piece in names:
        match = re.match(r"\s*\**\s*([A-Za-z_]\w*)", piece)
        if match:
            result.append(match.group(1))
    return result


def classify_value(value: str) -> str:
    """Classify the right-hand side of a simple assignment (masked text)."""
    value = value.strip()
    if _NUMBER_LITERAL.match(value):
        return "number"
    if value[:1] in ("'", '"') and value[-1:] == value[:1] and value.count(value[0]) in (2, 6):
        return "string"
    if value == "None":
        return "none"
    if value.startswith("{") or value.startswith("dict("):
        return "dict"
    if value.startswith("[") or value.startswith("list("):
        return "list"
    return "other"


class SourceText:
    """Raw and masked lines of one piece of code plus binding information.

    Built once per scan; rules read from it but never modify it.
    """

    def __init__(self, code: str):
        self.code = code
        self.lines = code.split("\n")
        self.masked = mask_source(code)
        self._first_binding: Optional[Dict[str, int]] = None
        self._assignments: Optional[Dict[str, List[Tuple[int, str]]]] = None
        self._in_function: Optional[List[bool]] = None

    # -- blocks -----------------------------------------------------------

    def is_blank(self, index: int) -> bool:
        return not self.masked[index].strip()

    def block_end(self, index: int) -> int:
        """Index of the last line belonging to the block opened at `index`."""
        header_indent = indent_of(self.masked[index])
        end = index
        for i in range(index + 1, len(self.masked)):
            if self.is_blank(i):
                continue
            if indent_of(self.masked[i]) <= header_indent:
                break
            end = i
        return end

    def block_body(self, index: int) -> List[int]:
        """Indices of the non-blank body lines of the block opened at `index`."""
        return [i for i in range(index + 1, self.block_end(index) + 1) if not self.is_blank(i)]

    def inline_body(self, index: int) -> str:
        """Text after the header colon when a block body sits on the header line."""
        line = self.masked[index]
        depth = 0
        for pos, ch in enumerate(line):
            if ch in "([{":
                depth += 1
            elif ch in ")]}":
                depth -= 1
            elif ch == ":" and depth == 0:
                return line[pos + 1:].strip()
        return ""

    def bracket_depth_before(self, index: int) -> int:
        """Number of brackets still open when line `index` starts."""
        depth = 0
        for line in self.masked[:index]:
            depth = max(0, depth + bracket_delta(line))
        return depth

    def bracketed_end(self, index: int) -> int:
        """Last line of the bracketed expression that line `index` sits in."""
        depth = self.bracket_depth_before(index)
        for i in range(index, len(self.masked)):
            depth += bracket_delta(self.masked[i])
            if depth <= 0:
                return i
        return len(self.masked) - 1

    # -- bindings ---------------------------------------------------------

    def bindings_on_line(self, index: int) -> Set[str]:
        """Names bound by the statement on one masked line."""
        line = self.masked[index]
        names: Set[str] = set()

        match = _DEF_HEADER.match(line)
        if match:
            names.add(match.group(1))
            signature = line[match.end():]
            follow = index + 1
            while ")" not in signature and follow < len(self.masked):
                signature += " " + self.masked[follow]
                follow += 1
            names.update(_parameter_names(signature))
        match = _CLASS_HEADER.match(line)
        if match:
            names.add(match.group(1))

        match = _IMPORT.match(line)
        if match:
            for part in match.group(1).split(","):
                part = part.strip()
                if " as " in part:
                    names.add(part.split(" as ")[-1].strip())
                elif part:
                    names.add(part.split(".")[0])
        match = _FROM_IMPORT.match(line)
        if match:
            imported = match.group(1)
            if "(" in line and ")" not in line:
                follow = index + 1
                while follow < len(self.masked):
                    imported += "," + self.masked[follow].split(")")[0]
                    if ")" in self.masked[follow]:
                        break
                    follow += 1
            for part in imported.split(","):
                part = part.strip()
                if part and part != "*":
                    names.add(part.split(" as ")[-1].strip())

        match = _ASSIGN_TARGETS.match(line)
        if match and not _DEF_HEADER.match(line):
            names.update(_names_in(match.group(1)))
        match = _ANNOTATED_NAME.match(line)
        if match:
            names.add(match.group(1))
        for match in _FOR_TARGETS.finditer(line):
            names.update(_names_in(match.group(1)))
        names.update(_AS_NAME.findall(line))
        names.update(_WALRUS.findall(line))
        for match in _LAMBDA_PARAMS.finditer(line):
            names.update(_parameter_names(match.group(1)))
        match = _GLOBAL.match(line)
        if match:
            names.update(_names_in(match.group(1)))
        return names

    def comprehension_targets(self, start: int, end: int) -> Set[str]:
        """Loop variables of `for ... in` clauses on lines start..end."""
        names: Set[str] = set()
        for line in self.masked[start:end + 1]:
            for match in _FOR_TARGETS.finditer(line):
                names.update(_names_in(match.group(1)))
        return names

    @property
    def first_binding(self) -> Dict[str, int]:
        """Map of name -> index of the first line that binds it."""
        if self._first_binding is None:
            first: Dict[str, int] = {}
            for index in range(len(self.masked)):
                for name in self.bindings_on_line(index):
                    first.setdefault(name, index)
            self._first_binding = first
        return self._first_binding

    @property
    def in_function(self) -> List[bool]:
        """Per line: whether the line sits inside a function body."""
        if self._in_function is None:
            flags = []
            stack: List[Tuple[int, bool]] = []
            for line in self.masked:
                if not line.strip():
                    flags.append(bool(stack) and any(is_def for _, is_def in stack))
                    continue
                indent = indent_of(line)
                while stack and stack[-1][0] >= indent:
                    stack.pop()
                flags.append(any(is_def for _, is_def in stack))
                if line.rstrip().endswith(":"):
                    stack.append((indent, bool(_DEF_HEADER.match(line))))
            self._in_function = flags
        return self._in_function

    def is_defined(self, name: str, index: int) -> bool:
        """Whether `name` is available when line `index` runs.

        Function bodies run late, so any binding anywhere counts there;
        module-level code needs a binding on or before the line.
        """
        if name in ALWAYS_DEFINED:
            return True
        first = self.first_binding.get(name)
        if first is None:
            return False
        return self.in_function[index] or first <= index

    @property
    def assignments(self) -> Dict[str, List[Tuple[int, str]]]:
        """Map of name -> [(line index, value kind)] for simple assignments."""
        if self._assignments is None:
            found: Dict[str, List[Tuple[int, str]]] = {}
            for index, line in enumerate(self.masked):
                match = _SIMPLE_ASSIGN.match(line)
                if match and not match.group(2).startswith("="):
                    found.setdefault(match.group(1), []).append((index, classify_value(match.group(2))))
            self._assignments = found
        return self._assignments

    def kind_before(self, name: str, index: int) -> Optional[str]:
        """Kind of the latest simple assignment to `name` before line `index`."""
        kind = None
        for assigned_at, value_kind in self.assignments.get(name, []):
            if assigned_at >= index:
                break
            kind = value_kind
        return kind

    def last_assignment_before(self, name: str, index: int) -> Optional[int]:
        last = None
        for assigned_at, _ in self.assignments.get(name, []):
            if assigned_at >= index:
                break
            last = assigned_at
        return last
