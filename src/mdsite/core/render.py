"""Page rendering: markup conversion, template substitution, nested layouts"""

import logging
from typing import Any, Mapping, Optional

from mdsite.core.models import Layout, Page, Post
from mdsite.core.site import SiteContext
from mdsite.core.template.environment import Environment
from mdsite.errors import CyclicLayout, LayoutNotFound


logger = logging.getLogger(__name__)


class Renderer:
    """Renders pages against a SiteContext; holds no per-render state."""

    def __init__(self, environment: Environment, layouts: Mapping[str, Layout],
                 post_layout: Optional[str] = None, page_layout: Optional[str] = None):
        self.environment = environment
        self.converter = environment.converter
        self.layouts = layouts
        self.post_layout = post_layout
        self.page_layout = page_layout

    def layout_for(self, page: Page) -> Optional[str]:
        if "layout" in page.front_matter:
            return page.layout
        return self.post_layout if isinstance(page, Post) else self.page_layout

    def variables(self, page: Page, site: SiteContext) -> dict[str, Any]:
        variables = {"site": site.variables, "page": site.page_variables(page)}
        if page.listing:
            variables["posts"] = site.variables["posts"]
        return variables

    def render(self, page: Page, site: SiteContext) -> str:
        """Convert, substitute, then wrap in the layout chain; returns the final HTML."""
        body = self.converter.convert_document(page.body) if page.is_markup else page.body
        variables = self.variables(page, site)
        content = self.environment.from_string(body, page.relative_path).render(variables)
        return self.apply_layouts(content, self.layout_for(page), variables)

    def apply_layouts(self, content: str, name: Optional[str], variables: Mapping[str, Any]) -> str:
        """Wrap content innermost-first until a layout declares no parent."""
        chain: list[str] = []
        while name:
            if name in chain:
                raise CyclicLayout(f"layout cycle: {' -> '.join(chain + [name])}")
            layout = self.layouts.get(name)
            if layout is None:
                via = f" (via {' -> '.join(chain)})" if chain else ""
                raise LayoutNotFound(f"layout '{name}' does not exist{via}")
            chain.append(name)
            content = layout.template.render({
                **variables,
                "content": content,
                "layout": dict(layout.front_matter),
            })
            name = layout.parent
        if chain:
            logger.debug("Applied layouts %s", " -> ".join(chain))
        return content
