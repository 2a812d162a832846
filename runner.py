#!/usr/bin/env python3
"""
HalGuard Runner - command line entry point.

Analyses one source file for hallucinations, renders a report and
optionally writes the full result as JSON.
"""

import sys
import json
import argparse
import logging
from pathlib import Path
from logging.handlers import RotatingFileHandler
from rich.logging import RichHandler
from rich.console import Console

# Ensure all module directories are in the path
current_dir = Path(__file__).parent.absolute()
sys.path.append(str(current_dir))

from core.config_loader import ConfigLoader
from core.orchestrator import DetectionOrchestrator
from core.report_display import ReportDisplay
from taxonomy.errors import InputValidationError
from taxonomy.models import HALLUCINATION_TYPES
from taxonomy.results import DetectionOptions

EXIT_CLEAN = 0
EXIT_INPUT_ERROR = 1
EXIT_CRITICAL_ISSUES = 2

file_handler = None
console_handler = None
log = logging.getLogger()


def setup_logging(logging_config):
    """
    Set up logging with a rotating file handler and a rich console handler.

    Args:
        logging_config (dict): Output of ConfigLoader.get_logging_config().
    """
    global file_handler, console_handler

    log_level_map = {
        'CRITICAL': logging.CRITICAL,
        'ERROR': logging.ERROR,
        'WARNING': logging.WARNING,
        'INFO': logging.INFO,
        'DEBUG': logging.DEBUG
    }
    file_log_level = log_level_map.get(logging_config.get('file_log_level', 'INFO'), logging.INFO)
    log.setLevel(min(file_log_level, logging.INFO))

    if file_handler is None:
        file_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        # File Handler (Rotating) - 2.5MB per file
        file_handler = RotatingFileHandler(logging_config.get('log_file', 'halguard_run.log'),
                                           maxBytes=2.5*1024*1024, backupCount=5, encoding='utf-8')
        file_handler.setFormatter(file_formatter)
        file_handler.setLevel(file_log_level)
        log.addHandler(file_handler)

    if console_handler is None:
        console_handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)
        console_handler.setLevel(logging.INFO)
        log.addHandler(console_handler)

    return log


def build_parser():
    parser = argparse.ArgumentParser(description="Detect hallucinations in AI-generated code.")
    parser.add_argument("file", type=str,
                        help="Path of the source file to analyse, or '-' to read standard input.")
    parser.add_argument("--language", type=str, default="python",
                        help="Language of the code. Defaults to python.")
    parser.add_argument("--no-execution", action="store_true",
                        help="Skip sandboxed execution; only static detectors run.")
    parser.add_argument("--threshold", type=float, default=None,
                        help="Drop findings below this confidence (0-1).")
    parser.add_argument("--focus", nargs="+", choices=HALLUCINATION_TYPES, default=None,
                        help="Only report these hallucination types.")
    parser.add_argument("--timeout-ms", type=int, default=None,
                        help="Sandbox time limit for this run in milliseconds.")
    parser.add_argument("--json", type=str, default=None, metavar="OUT",
                        help="Also write the full result as JSON to this path.")
    parser.add_argument("--config", type=str, default=None,
                        help="Path to config.ini. Defaults to the one next to this script.")
    return parser


def read_source(path_arg):
    if path_arg == "-":
        return sys.stdin.read(), "<stdin>"
    path = Path(path_arg)
    return path.read_text(encoding="utf-8"), str(path)


def main(argv=None):
    """Main runner function; returns the process exit code."""
    args = build_parser().parse_args(argv)

    config_loader = ConfigLoader(config_path=args.config or current_dir / "config.ini")
    setup_logging(config_loader.get_logging_config())

    try:
        code, source_name = read_source(args.file)
    except (OSError, UnicodeDecodeError) as e:
        log.error(f"❌ Could not read {args.file}: {e}")
        return EXIT_INPUT_ERROR

    orchestrator = DetectionOrchestrator.from_config(config_loader)
    try:
        options = DetectionOptions.from_config(
            config_loader.get_detection_config(),
            confidence_threshold=args.threshold,
            focus_categories=args.focus,
            enable_execution_analysis=False if args.no_execution else None,
            max_execution_time_ms=args.timeout_ms,
        )
        result = orchestrator.detect_hallucinations(code, args.language, options)
    except (InputValidationError, ValueError) as e:
        log.error(f"❌ {e}")
        return EXIT_INPUT_ERROR

    ReportDisplay().print_report(result, source_name)

    if args.json:
        Path(args.json).write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
        log.info(f"💾 Result written to {args.json}")

    return EXIT_CRITICAL_ISSUES if result.has_critical_issues else EXIT_CLEAN


if __name__ == "__main__":
    sys.exit(main())
