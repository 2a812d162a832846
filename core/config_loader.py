#!/usr/bin/env python3
"""
HalGuard ConfigLoader - Module for loading and parsing configuration files.
"""

import configparser
import logging
from pathlib import Path

from taxonomy.execution import (
    DEFAULT_MAX_CODE_LENGTH,
    DEFAULT_MAX_CPU_CORES,
    DEFAULT_MAX_EXECUTION_TIME_MS,
    DEFAULT_MAX_MEMORY_MB,
)
from taxonomy.models import HALLUCINATION_TYPES
from taxonomy.results import (
    DEFAULT_CONFIDENCE_THRESHOLD,
    DEFAULT_CPU_USAGE_THRESHOLD,
    DEFAULT_EXECUTION_TIME_THRESHOLD_MS,
    DEFAULT_MEMORY_THRESHOLD_MB,
)

log = logging.getLogger(__name__)

SANDBOX_DEFAULTS = {
    'max_memory_mb': DEFAULT_MAX_MEMORY_MB,
    'max_execution_time_ms': DEFAULT_MAX_EXECUTION_TIME_MS,
    'max_cpu_cores': DEFAULT_MAX_CPU_CORES,
    'max_code_length': DEFAULT_MAX_CODE_LENGTH,
    'interpreter': '',
}

DETECTION_DEFAULTS = {
    'confidence_threshold': DEFAULT_CONFIDENCE_THRESHOLD,
    'enable_execution_analysis': True,
    'enable_static_analysis': True,
    'enable_pattern_matching': True,
    'generate_recommendations': True,
    'focus_categories': HALLUCINATION_TYPES,
    'max_workers': 4,
    'memory_threshold_mb': DEFAULT_MEMORY_THRESHOLD_MB,
    'execution_time_threshold_ms': DEFAULT_EXECUTION_TIME_THRESHOLD_MS,
    'cpu_usage_threshold': DEFAULT_CPU_USAGE_THRESHOLD,
}

LOGGING_DEFAULTS = {
    'file_log_level': 'INFO',
    'log_file': 'halguard_run.log',
}


class ConfigLoader:
    """
    Handles loading and parsing of configuration files for HalGuard components.
    """
    def __init__(self, config_path=None):
        """
        Initialize the config loader with a path to the configuration file.

        Args:
            config_path (str or Path, optional): Path to the configuration file.
                If None, the default config.ini in the project root will be used.
        """
        if config_path is None:
            self.config_path = Path(__file__).parent.parent / "config.ini"
        else:
            self.config_path = Path(config_path)

        self.config = configparser.ConfigParser(inline_comment_prefixes=(';', '#'))
        self._load_config()

    def _load_config(self):
        """Load the configuration file."""
        if not self.config_path.exists():
            log.error(f"Configuration file not found at {self.config_path}")
            raise FileNotFoundError(f"Configuration file not found at {self.config_path}")

        self.config.read(self.config_path)
        log.debug(f"Configuration loaded from {self.config_path}")

    def get_section(self, section_name):
        """
        Get a specific configuration section.

        Raises:
            KeyError: If the section doesn't exist.
        """
        if section_name not in self.config:
            raise KeyError(f"Configuration section '{section_name}' not found")
        return self.config[section_name]

    def get_sandbox_config(self):
        """
        Get the Sandbox configuration section with parsed values.

        Returns:
            dict: Resource limits and interpreter settings for the sandbox.
        """
        try:
            section = self.get_section('Sandbox')
            return {
                'max_memory_mb': section.getint('MaxMemoryMB', DEFAULT_MAX_MEMORY_MB),
                'max_execution_time_ms': section.getint('MaxExecutionTimeMs', DEFAULT_MAX_EXECUTION_TIME_MS),
                'max_cpu_cores': section.getint('MaxCpuCores', DEFAULT_MAX_CPU_CORES),
                'max_code_length': section.getint('MaxCodeLength', DEFAULT_MAX_CODE_LENGTH),
                'interpreter': section.get('Interpreter', '').strip(),
            }
        except (KeyError, ValueError) as e:
            log.warning(f"Error parsing Sandbox configuration, using defaults: {e}")
            return dict(SANDBOX_DEFAULTS)

    def get_detection_config(self):
        """
        Get the Detection configuration section with parsed values.

        Returns:
            dict: Default DetectionOptions values plus the batch worker count.
        """
        try:
            section = self.get_section('Detection')
            focus_str = section.get('FocusCategories', ','.join(HALLUCINATION_TYPES))
            focus = tuple(name.strip().lower() for name in focus_str.split(',') if name.strip())
            return {
                'confidence_threshold': section.getfloat('ConfidenceThreshold', DEFAULT_CONFIDENCE_THRESHOLD),
                'enable_execution_analysis': section.getboolean('EnableExecutionAnalysis', True),
                'enable_static_analysis': section.getboolean('EnableStaticAnalysis', True),
                'enable_pattern_matching': section.getboolean('EnablePatternMatching', True),
                'generate_recommendations': section.getboolean('GenerateRecommendations', True),
                'focus_categories': focus or HALLUCINATION_TYPES,
                'max_workers': section.getint('MaxWorkers', 4),
                'memory_threshold_mb': section.getfloat('MemoryThresholdMB', DEFAULT_MEMORY_THRESHOLD_MB),
                'execution_time_threshold_ms': section.getfloat(
                    'ExecutionTimeThresholdMs', DEFAULT_EXECUTION_TIME_THRESHOLD_MS),
                'cpu_usage_threshold': section.getfloat('CpuUsageThreshold', DEFAULT_CPU_USAGE_THRESHOLD),
            }
        except (KeyError, ValueError) as e:
            log.warning(f"Error parsing Detection configuration, using defaults: {e}")
            return dict(DETECTION_DEFAULTS)

    def get_logging_config(self):
        try:
            section = self.get_section('Logging')
            return {
                'file_log_level': section.get('FileLogLevel', 'INFO').upper(),
                'log_file': section.get('LogFile', 'halguard_run.log'),
            }
        except KeyError as e:
            log.warning(f"Error parsing Logging configuration, using defaults: {e}")
            return dict(LOGGING_DEFAULTS)

    def get_config_path(self):
        """
        Get the path to the configuration file.

        Returns:
            Path: The path to the configuration file.
        """
        return self.config_path
