"""
Tests for traceback parsing and the exception-to-taxonomy map.
"""

import pytest

from evaluator.error_parser import parse_errors
from taxonomy.error_map import UNCAUGHT_EXCEPTION_CATEGORY, categorize_error

SOURCE_PATH = "/tmp/halguard_abc/main.py"

ZERO_DIVISION = """Traceback (most recent call last):
  File "/opt/halguard/evaluator/sandbox_bootstrap.py", line 96, in <module>
    main(sys.argv)
  File "<frozen runpy>", line 291, in run_path
  File "/tmp/halguard_abc/main.py", line 3, in <module>
    print(10 / 0)
          ~~~^~~
ZeroDivisionError: division by zero
"""


def test_parses_type_message_line_and_column():
    errors = parse_errors(ZERO_DIVISION, SOURCE_PATH, ["a = 1", "b = 2", "print(10 / 0)"])

    assert len(errors) == 1
    error = errors[0]
    assert error.type == "ZeroDivisionError"
    assert error.message == "division by zero"
    assert error.line_number == 3
    assert error.column_number == 7


def test_line_offset_is_subtracted():
    errors = parse_errors(ZERO_DIVISION, SOURCE_PATH, line_offset=2)

    assert errors[0].line_number == 1


def test_lines_inside_the_injected_header_are_dropped():
    errors = parse_errors(ZERO_DIVISION, SOURCE_PATH, line_offset=3)

    assert errors[0].line_number is None
    assert errors[0].column_number is None


def test_frames_from_other_files_are_ignored():
    stderr = (
        "Traceback (most recent call last):\n"
        '  File "/tmp/halguard_abc/main.py", line 2, in <module>\n'
        '  File "/usr/lib/python3.12/json/__init__.py", line 346, in loads\n'
        "json.decoder.JSONDecodeError: Expecting value: line 1 column 1 (char 0)\n"
    )

    errors = parse_errors(stderr, SOURCE_PATH)

    assert errors[0].type == "JSONDecodeError"
    assert errors[0].message == "Expecting value: line 1 column 1 (char 0)"
    assert errors[0].line_number == 2


def test_exception_without_message():
    stderr = 'Traceback (most recent call last):\n  File "/tmp/x/main.py", line 1, in <module>\nKeyboardInterrupt\n'

    errors = parse_errors(stderr, "/tmp/x/main.py")

    assert errors[0].type == "KeyboardInterrupt"
    assert errors[0].message == ""


def test_sandbox_noise_before_the_traceback_is_skipped():
    stderr = "sandbox: could not restrict CPU cores: denied\n" + ZERO_DIVISION

    errors = parse_errors(stderr, SOURCE_PATH)

    assert errors[0].type == "ZeroDivisionError"


@pytest.mark.parametrize("stderr, expected", [
    ("Killed", "MemoryError"),
    ("fatal: out of memory while allocating", "MemoryError"),
    ("something odd happened", "ProcessError"),
])
def test_fallback_classification(stderr, expected):
    errors = parse_errors(stderr)

    assert errors[0].type == expected
    assert errors[0].message == stderr


def test_empty_stderr_has_no_errors():
    assert parse_errors("") == []
    assert parse_errors("  \n") == []


# ============================================================================
# Exception -> taxonomy map
# ============================================================================

@pytest.mark.parametrize("name, type_, subtype, severity", [
    ("TypeError", "mapping", "data_compliance", "high"),
    ("KeyError", "mapping", "structure_access", "medium"),
    ("NameError", "naming", "identity", "high"),
    ("ModuleNotFoundError", "naming", "external_source", "critical"),
    ("RecursionError", "resource", "physical_constraint", "high"),
    ("TimeoutError", "resource", "computational_boundary", "critical"),
    ("ZeroDivisionError", "logic", "logic_deviation", "high"),
    ("SyntaxError", "logic", "logic_breakdown", "critical"),
])
def test_categorize_error(name, type_, subtype, severity):
    slot = categorize_error(name)

    assert (slot.type, slot.subtype, slot.severity) == (type_, subtype, severity)


def test_qualified_and_unknown_names():
    assert categorize_error("builtins.KeyError").subtype == "structure_access"
    assert categorize_error("BudgetError") == UNCAUGHT_EXCEPTION_CATEGORY
