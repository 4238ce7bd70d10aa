from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    IO_ERROR = "IOError"
    FORMAT_ERROR = "FormatError"
    GENERATION_ERROR = "GenerationError"
    EXECUTION_ERROR = "ExecutionError"
    TIMEOUT_ERROR = "TimeoutError"
    RESOURCE_ERROR = "ResourceError"


class AnalysisError(Exception):
    """Base class for failures raised by the analysis pipeline."""

    kind: ErrorKind | None = None


class DataIOError(AnalysisError):
    """Raised when an uploaded file is missing or cannot be read."""

    kind = ErrorKind.IO_ERROR


class FormatError(AnalysisError):
    """Raised when file content does not match its declared format."""

    kind = ErrorKind.FORMAT_ERROR


class GenerationError(AnalysisError):
    """Raised when the language model fails or returns no code."""

    kind = ErrorKind.GENERATION_ERROR


class ResourceError(AnalysisError):
    """Raised when a workspace cannot be created or the interpreter cannot start."""

    kind = ErrorKind.RESOURCE_ERROR
