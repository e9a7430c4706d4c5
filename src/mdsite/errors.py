"""Build error taxonomy: every error is attributed to a single source document"""

from pathlib import Path
from typing import Optional


class SiteError(Exception):
    """Base class for per-document build failures."""

    def __init__(self, message: str, path: Optional[str | Path] = None):
        super().__init__(message)
        self.message = message
        self.path = str(path) if path is not None else None

    @property
    def kind(self) -> str:
        return type(self).__name__

    def at(self, path: str | Path) -> "SiteError":
        """Attach the offending document path unless one is already set."""
        if self.path is None:
            self.path = str(path)
        return self

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


class UnreadableDocument(SiteError):
    pass


class MalformedFrontMatter(SiteError):
    pass


class MalformedData(SiteError):
    pass


class InvalidPostName(SiteError):
    pass


class DuplicateUrl(SiteError):
    pass


class UnwritableOutput(SiteError):
    pass


class LayoutNotFound(SiteError):
    pass


class CyclicLayout(SiteError):
    pass


class TemplateError(SiteError):
    """Errors raised while parsing or evaluating a template.

    The message is prefixed with the template name and line when known.
    """

    def __init__(self, message: str, template: Optional[str] = None, line: Optional[int] = None):
        location = template or "<string>"
        if line is not None:
            location = f"{location}, line {line}"
        super().__init__(f"{location}: {message}")
        self.template = template
        self.line = line


class TemplateSyntaxError(TemplateError):
    pass


class UnresolvedReference(TemplateError):
    pass


class IncludeNotFound(TemplateError):
    pass


class CyclicInclude(TemplateError):
    pass


class RenderError(TemplateError):
    pass


def line_of(source: str, offset: int) -> int:
    """Return the 1-based line number of offset in source."""
    return source.count("\n", 0, offset) + 1
