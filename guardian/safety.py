"""
Safety module that decides whether candidate code may run in the sandbox.
"""

import logging
import re
from dataclasses import dataclass
from typing import List

from detector.source_text import SourceText
from taxonomy.models import SafetyAssessment

log = logging.getLogger(__name__)

# Confidence lost per finding level
LEVEL_PENALTY = {"high": 0.3, "medium": 0.25, "low": 0.05}

MAX_SAFE_CODE_LENGTH = 10000
MAX_RISKS = 5

ALLOWED_MODULES = {
    "math", "cmath", "random", "json", "time", "datetime", "calendar", "zoneinfo",
    "collections", "itertools", "functools", "operator", "re", "string", "textwrap",
    "typing", "dataclasses", "enum", "abc", "statistics", "decimal", "fractions",
    "numbers", "heapq", "bisect", "array", "copy", "pprint", "contextlib", "uuid",
    "hashlib", "base64", "unittest", "doctest", "__future__", "dis", "queue",
    "difflib", "unicodedata", "struct", "weakref", "asyncio", "logging", "warnings",
}


@dataclass(frozen=True)
class SafetyFinding:
    level: str
    risk: str
    line: int


class SafetyAssessor:
    """Static pre-check for dangerous constructs, separate from the hallucination rules."""

    def __init__(self):
        # (pattern, risk description, level) applied per masked line
        self.unsafe_patterns = [
            (r"^\s*(?:import|from)\s+(os|subprocess|sys|shutil|signal|ctypes|multiprocessing|pty|importlib|resource)\b",
             "Process/OS-control module import", "high"),
            (r"^\s*(?:import|from)\s+(socket|urllib|requests|http|httpx|aiohttp|ftplib|smtplib|telnetlib|paramiko|ssl)\b",
             "Networking module import", "high"),
            (r"(?<![\w.])(exec|eval|compile|__import__)\s*\(", "Dynamic code evaluation", "high"),
            (r"\.(kill|terminate)\s*\(|(?<![\w.])(exit|quit)\s*\(", "Process control call", "high"),
            (r"(?<![\w.])(open|file)\s*\(", "Filesystem access", "medium"),
            (r"\.(read|readlines|write|writelines|remove|unlink|rmdir|rmtree|delete|read_text|write_text)\s*\(",
             "Filesystem read/write call", "medium"),
            (r"(?<![\w.])(globals|locals|vars|dir|getattr|setattr|delattr|hasattr)\s*\(",
             "Introspection builtin", "low"),
        ]
        self._compiled = [(re.compile(pattern), risk, level) for pattern, risk, level in self.unsafe_patterns]
        self._import = re.compile(r"^\s*(?:import\s+([\w.,\s]+?)|from\s+([\w.]+)\s+import\b.*)\s*$")
        self._infinite_loop = re.compile(r"^\s*while\s+(?:True|1)\s*:")
        self._loop_exit = re.compile(r"\b(?:break|return|raise)\b|\b(?:sys\.exit|exit|quit)\s*\(")

    def scan(self, code: str) -> List[SafetyFinding]:
        """Return every safety finding in `code`, in line order."""
        source = SourceText(code)
        findings: List[SafetyFinding] = []
        flagged_modules = set()

        for index, line in enumerate(source.masked):
            if not line.strip():
                continue
            for pattern, risk, level in self._compiled:
                match = pattern.search(line)
                if match:
                    detail = next((group for group in match.groups() if group), match.group(0).strip())
                    findings.append(SafetyFinding(level, f"{risk}: {detail} (line {index + 1})", index + 1))
                    if level == "high" and risk.endswith("import"):
                        flagged_modules.add(detail)

            match = self._import.match(line)
            if match:
                modules = match.group(1).split(",") if match.group(1) else [match.group(2)]
                for module in modules:
                    top = module.strip().split(" as ")[0].split(".")[0].strip()
                    if top and top not in ALLOWED_MODULES and top not in flagged_modules:
                        findings.append(SafetyFinding(
                            "low", f"Module outside the allow-list: {top} (line {index + 1})", index + 1
                        ))

            if self._infinite_loop.match(line):
                body = [source.inline_body(index)] + [source.masked[i] for i in source.block_body(index)]
                if not any(self._loop_exit.search(body_line) for body_line in body):
                    findings.append(SafetyFinding("high", "Potential infinite loop detected", index + 1))

        if len(code) > MAX_SAFE_CODE_LENGTH:
            findings.append(SafetyFinding("low", f"Code is unusually long ({len(code)} characters)", 0))
        return findings

    def validate_safety(self, code: str) -> SafetyAssessment:
        """Decide whether `code` is safe and whether it may be executed.

        Returns:
            SafetyAssessment: `allow_execution` is False exactly when a
            high-level finding exists; `is_safe` additionally requires no
            medium-level finding and enough remaining confidence.
        """
        findings = self.scan(code)
        confidence = max(0.0, 1.0 - sum(LEVEL_PENALTY[finding.level] for finding in findings))
        levels = {finding.level for finding in findings}
        risks = tuple(finding.risk for finding in findings)

        allow_execution = "high" not in levels
        is_safe = (
            confidence > 0.5
            and len(risks) < MAX_RISKS
            and not levels & {"high", "medium"}
        )

        recommendations = []
        if "high" in levels:
            recommendations.append("Remove process, network and dynamic-evaluation calls before running this code")
        if "medium" in levels:
            recommendations.append("Review filesystem access; the sandbox runs in a throwaway working directory")
        if any(finding.risk == "Potential infinite loop detected" for finding in findings):
            recommendations.append("Add an exit condition to unbounded loops")

        if findings:
            log.debug(f"Safety scan: {len(findings)} finding(s), allow_execution={allow_execution}")
        return SafetyAssessment(
            is_safe=is_safe,
            risks=risks,
            confidence=round(confidence, 4),
            allow_execution=allow_execution,
            recommendations=tuple(recommendations),
        )
