"""
Tests for the SafetyAssessor execution gate.

Covers:
- Clean code passes with full confidence
- High-level findings (OS, network, dynamic evaluation, unbounded loops) block execution
- Medium-level findings mark code unsafe but still allow execution
- Low-level findings (allow-list, introspection, length) only cost confidence
- Strings and comments never trigger findings
"""

import pytest

from guardian.safety import SafetyAssessor


FIBONACCI = '''def fibonacci(n):
    if n <= 1:
        return n
    return fibonacci(n - 1) + fibonacci(n - 2)

print(fibonacci(10))
'''


def test_clean_code_is_safe(assessor):
    assessment = assessor.validate_safety(FIBONACCI)

    assert assessment.is_safe is True
    assert assessment.allow_execution is True
    assert assessment.risks == ()
    assert assessment.confidence == 1.0
    assert assessment.recommendations == ()


# ============================================================================
# High-level findings
# ============================================================================

@pytest.mark.parametrize("code, detail", [
    ('import os\nos.system("ls")', "os"),
    ("import subprocess", "subprocess"),
    ("import sys\nprint(sys.argv)", "sys"),
    ("from shutil import rmtree", "shutil"),
    ("import socket", "socket"),
    ('eval("1 + 1")', "eval"),
    ('exec("x = 1")', "exec"),
])
def test_dangerous_code_blocks_execution(assessor, code, detail):
    assessment = assessor.validate_safety(code)

    assert assessment.is_safe is False
    assert assessment.allow_execution is False
    assert any(detail in risk for risk in assessment.risks)
    assert assessment.confidence < 1.0
    assert assessment.recommendations


def test_os_import_reports_its_line(assessor):
    findings = assessor.scan('x = 1\nimport os\n')

    assert [(f.level, f.line) for f in findings] == [("high", 2)]
    assert findings[0].risk == "Process/OS-control module import: os (line 2)"


def test_unbounded_loop_blocks_execution(assessor):
    assessment = assessor.validate_safety("while True:\n    pass")

    assert "Potential infinite loop detected" in assessment.risks
    assert assessment.allow_execution is False
    assert "Add an exit condition to unbounded loops" in assessment.recommendations


def test_loop_with_break_is_allowed(assessor):
    code = "n = 0\nwhile True:\n    n += 1\n    if n > 3:\n        break"
    assessment = assessor.validate_safety(code)

    assert assessment.allow_execution is True
    assert assessment.is_safe is True


# ============================================================================
# Medium and low findings
# ============================================================================

def test_file_access_is_unsafe_but_may_run(assessor):
    code = 'with open("data.txt") as f:\n    content = f.read()'
    assessment = assessor.validate_safety(code)

    assert assessment.is_safe is False
    assert assessment.allow_execution is True
    assert assessment.confidence == pytest.approx(0.5)


def test_allow_listed_modules_are_safe(assessor):
    code = "import math\nimport json\nimport random\nfrom collections import Counter\nprint(math.pi)"
    assessment = assessor.validate_safety(code)

    assert assessment.is_safe is True
    assert assessment.risks == ()


def test_method_named_like_a_builtin_is_not_flagged(assessor):
    assessment = assessor.validate_safety('import re\npattern = re.compile("a+")')

    assert assessment.risks == ()


def test_module_outside_allow_list_costs_confidence_only(assessor):
    assessment = assessor.validate_safety("import numpy as np\nprint(np)")

    assert assessment.is_safe is True
    assert assessment.allow_execution is True
    assert assessment.confidence == pytest.approx(0.95)
    assert assessment.risks == ("Module outside the allow-list: numpy (line 1)",)


def test_many_low_findings_make_code_unsafe(assessor):
    code = "print(dir())\nprint(vars())\nprint(globals())\nprint(locals())\nprint(hasattr(1, 'x'))"
    assessment = assessor.validate_safety(code)

    assert len(assessment.risks) == 5
    assert assessment.is_safe is False
    assert assessment.allow_execution is True


def test_long_code_is_noted(assessor):
    assessment = assessor.validate_safety("x = 1\n" * 2000)

    assert any("unusually long" in risk for risk in assessment.risks)
    assert assessment.allow_execution is True


@pytest.mark.parametrize("code", [
    'print("eval(x) and import os are only words here")',
    "# import subprocess\nprint(1)",
    'note = """\nwhile True:\n    pass\n"""',
])
def test_strings_and_comments_are_ignored(assessor, code):
    assert assessor.scan(code) == []


def test_assessment_to_dict(assessor):
    data = assessor.validate_safety("import os").to_dict()

    assert data["allowExecution"] is False
    assert data["isSafe"] is False
    assert data["risks"] == ["Process/OS-control module import: os (line 1)"]
