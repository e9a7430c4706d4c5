"""Template environment: parsing entry point, include loading and caching"""

import logging
import threading
from pathlib import Path
from typing import Any, Mapping, Optional

from mdsite.core.markup import MarkupConverter
from mdsite.core.template.context import Context
from mdsite.core.template.filters import FILTERS
from mdsite.core.template.nodes import Node, render_nodes
from mdsite.core.template.parser import Parser
from mdsite.errors import IncludeNotFound, UnreadableDocument


logger = logging.getLogger(__name__)


class Template:
    """A parsed template; immutable and safe to render from several threads."""

    def __init__(self, environment: "Environment", nodes: list[Node], name: str):
        self.environment = environment
        self.nodes = nodes
        self.name = name

    def render(self, variables: Mapping[str, Any]) -> str:
        context = Context(self.environment, variables)
        out: list[str] = []
        self.render_into(context, out)
        return "".join(out)

    def render_into(self, context: Context, out: list[str]) -> None:
        with context.rendering(self.name):
            render_nodes(self.nodes, context, out)


class Environment:
    """Shared configuration for every template of a build."""

    def __init__(
        self,
        includes_dir: Optional[Path] = None,
        strict_variables: bool = False,
        converter: Optional[MarkupConverter] = None,
        ):
        self.includes_dir = includes_dir
        self.strict_variables = strict_variables
        self.converter = converter or MarkupConverter()
        self.filters = dict(FILTERS)
        self._includes: dict[str, Template] = {}
        self._lock = threading.Lock()

    def from_string(self, source: str, name: str = "<string>") -> Template:
        """Parse source into a Template; raises TemplateSyntaxError."""
        nodes = Parser(source, name, self.filters.__contains__).parse()
        return Template(self, nodes, name)

    def _include_path(self, name: str) -> Optional[Path]:
        if self.includes_dir is None:
            return None
        root = self.includes_dir.resolve()
        path = (root / name).resolve()
        if root not in path.parents or not path.is_file():
            return None
        return path

    def get_include(self, name: str, template: Optional[str] = None, line: Optional[int] = None) -> Template:
        """Return the parsed include, parsing and caching it on first use."""
        with self._lock:
            cached = self._includes.get(name)
        if cached is not None:
            return cached

        path = self._include_path(name)
        if path is None:
            raise IncludeNotFound(f"include '{name}' not found in {self.includes_dir}", template, line)
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise UnreadableDocument(f"cannot read include '{name}': {e}", path) from e

        parsed = self.from_string(source, f"{self.includes_dir.name}/{name}")
        logger.debug("Parsed include %s", name)
        with self._lock:
            return self._includes.setdefault(name, parsed)
