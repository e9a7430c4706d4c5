"""Immutable per-build site context passed explicitly into every render"""

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping

from mdsite.config import Settings
from mdsite.core.collection import Collection
from mdsite.core.models import Page, Post


@dataclass(frozen=True)
class SiteContext:
    """Built once per build after the collection is complete; never mutated afterwards."""
    settings:   Settings
    collection: Collection
    pages:      tuple[Page, ...]
    data:       Mapping[str, Any] = field(default_factory=dict)
    time:       datetime = field(default_factory=datetime.now)
    variables:  Mapping[str, Any] = field(init=False)

    def __post_init__(self):
        posts = [p.to_liquid() for p in self.collection.all()]
        by_url = {p["url"]: p for p in posts}
        site = self.settings.site_variables()
        site.update(
            posts=posts,
            pages=[p.to_liquid() for p in self.pages],
            tags={name: [by_url[p.url] for p in group] for name, group in self.collection.tags().items()},
            categories={name: [by_url[p.url] for p in group]
                        for name, group in self.collection.categories().items()},
            data=self.data,
            time=self.time,
        )
        object.__setattr__(self, "variables", MappingProxyType(site))

    def page_variables(self, page: Page) -> dict[str, Any]:
        """The `page` variable: front matter plus derived fields; posts also get previous/next."""
        data = page.to_liquid()
        if isinstance(page, Post):
            previous, following = self.collection.neighbours(page)
            data["previous"] = previous.summary() if previous else None
            data["next"] = following.summary() if following else None
        return data
