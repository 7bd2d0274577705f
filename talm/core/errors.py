"""Error taxonomy for talm rendering."""
from typing import Optional


class TalmError(Exception):
    """Base class for every error surfaced by a render invocation."""


class ValueParseError(TalmError):
    """An inline value assignment could not be parsed."""


class ValueFileError(TalmError):
    """A values (or secrets) file is missing, unreadable or malformed."""


class ConnectivityError(TalmError):
    """The target node could not be reached while a live answer was expected."""


class _TemplateError(TalmError):
    """Template failure carrying the template file and line."""

    def __init__(
        self,
        message: str,
        template: Optional[str] = None,
        lineno: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.template = template
        self.lineno = lineno

    def __str__(self) -> str:
        if self.template and self.lineno:
            return f"{self.template}:{self.lineno}: {self.message}"
        if self.template:
            return f"{self.template}: {self.message}"
        return self.message


class TemplateSyntaxError(_TemplateError):
    """A template could not be parsed."""


class TemplateExecutionError(_TemplateError):
    """A template failed while executing (helper or field error)."""


class MergeConflictError(TalmError):
    """A rendered fragment cannot be represented on top of the base document."""


class ConfigGenerationError(TalmError):
    """The base configuration document could not be generated."""
