"""Compiler error hierarchy."""

from typing import Any, Optional


class GtkWireError(Exception):
    """Base class for every error raised while compiling a project."""

    category = "Error"

    def __init__(
        self,
        message: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
        file_path: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.start = start
        self.end = end if end is not None else start
        self.file_path = file_path

    @classmethod
    def at(cls, node: Any, message: str, file_path: Optional[str] = None) -> "GtkWireError":
        """Build an error located at a template node (anything with start/end)."""
        return cls(
            message,
            start=getattr(node, "start", None),
            end=getattr(node, "end", None),
            file_path=file_path,
        )

    @property
    def has_span(self) -> bool:
        return self.start is not None

    def __str__(self) -> str:
        if self.file_path:
            return f"{self.file_path}: {self.message}"
        return self.message


class WireSyntaxError(GtkWireError):
    """Raised by the front end for malformed markup or Python syntax."""

    category = "Syntax Error"


class AnalysisError(GtkWireError):
    """Raised while analyzing a script (props, imports, reactive declarations)."""

    category = "Analysis Error"


class LoweringError(GtkWireError):
    """Raised while lowering a template into widget construction code."""

    category = "GTK Error"


class WireFileError(GtkWireError):
    """Raised when an input file is missing or unreadable."""

    category = "File Error"
