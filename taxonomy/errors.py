"""Exceptions raised to callers of the detection pipeline."""


class DetectionError(Exception):
    """Base class for all caller-visible detection errors."""


class InputValidationError(DetectionError):
    """The submitted code cannot be analysed at all (empty, oversized, ...)."""


class UnsupportedLanguageError(InputValidationError):
    def __init__(self, language):
        self.language = language
        super().__init__(f"Language '{language}' not yet supported")
