"""Immutable content models: documents, pages, posts and layouts"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional


MARKUP_EXTENSIONS = {".md", ".markdown"}
PAGE_EXTENSIONS = MARKUP_EXTENSIONS | {".html", ".htm"}
NO_LAYOUT = {None, "", "none", "null", False}


def layout_name(value: Any) -> Optional[str]:
    """Normalise a front matter layout reference ('post', 'post.html') to a layout name."""
    if value in NO_LAYOUT:
        return None
    name = str(value)
    return name[:-len(".html")] if name.endswith(".html") else name


@dataclass(frozen=True)
class Document:
    """A source file split into front matter and body."""
    path:          Path
    relative_path: str                  # posix path relative to the site source
    front_matter:  Mapping[str, Any]    # read-only
    body:          str

    @property
    def is_markup(self) -> bool:
        return self.path.suffix.lower() in MARKUP_EXTENSIONS

    @property
    def layout(self) -> Optional[str]:
        return layout_name(self.front_matter.get("layout"))


@dataclass(frozen=True)
class Page(Document):
    """A Document that renders to its own output URL."""
    url: str

    @property
    def listing(self) -> bool:
        """Listing pages get the full post sequence bound as `posts`."""
        return self.url == "/" or bool(self.front_matter.get("listing"))

    def to_liquid(self) -> dict[str, Any]:
        data = dict(self.front_matter)
        data.update(url=self.url, path=self.relative_path, name=self.path.name)
        data.setdefault("title", None)
        return data


@dataclass(frozen=True)
class Post(Page):
    """A dated Page belonging to the post collection."""
    date:       datetime
    slug:       str
    title:      str
    categories: tuple[str, ...]
    tags:       tuple[str, ...]
    excerpt:    str     # HTML
    content:    str     # converted body HTML; template spans unevaluated
    draft:      bool = False

    @property
    def id(self) -> str:
        return self.url.rstrip("/").rsplit(".", 1)[0] or "/"

    def to_liquid(self) -> dict[str, Any]:
        data = super().to_liquid()
        data.update(
            id=self.id,
            date=self.date,
            slug=self.slug,
            title=self.title,
            categories=list(self.categories),
            tags=list(self.tags),
            excerpt=self.excerpt,
            content=self.content,
            draft=self.draft,
        )
        return data

    def summary(self) -> dict[str, Any]:
        """Shallow variables used for previous/next links."""
        return {"title": self.title, "url": self.url, "date": self.date, "slug": self.slug, "id": self.id}


@dataclass(frozen=True)
class Layout:
    """A wrapper template with a single `content` hole and an optional parent layout."""
    name:         str
    path:         Path
    front_matter: Mapping[str, Any]
    template:     Any       # mdsite.core.template.Template

    @property
    def parent(self) -> Optional[str]:
        return layout_name(self.front_matter.get("layout"))
