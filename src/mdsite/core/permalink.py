"""URL derivation from permalink templates, and URL -> output path mapping"""

import re
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional

from mdsite.core.models import PAGE_EXTENSIONS
from mdsite.core.utils.slug import slugify


STYLES = {
    "date":    "/:categories/:year/:month/:day/:title:output_ext",
    "pretty":  "/:categories/:year/:month/:day/:title/",
    "ordinal": "/:categories/:year/:y_day/:title:output_ext",
    "none":    "/:categories/:title:output_ext",
}
OUTPUT_EXT = ".html"

_PLACEHOLDER_RE = re.compile(r":([a-z_]+)")


def normalize_url(url: str) -> str:
    """Collapse duplicate slashes and drop '.'/'..' segments; keeps a trailing slash."""
    trailing = url.endswith("/")
    parts = [p for p in url.split("/") if p not in ("", ".", "..")]
    path = "/" + "/".join(parts)
    if trailing and parts:
        path += "/"
    return path


def expand(template: str, values: dict[str, str]) -> str:
    """Replace :placeholders with values; unknown placeholders are left as written."""
    template = STYLES.get(template, template)
    expanded = _PLACEHOLDER_RE.sub(lambda m: values.get(m.group(1), m.group(0)), template)
    return normalize_url(expanded)


def post_url(
    permalink: str,
    date: datetime,
    slug: str,
    categories: Iterable[str] = (),
    override: Optional[str] = None,
    ) -> str:
    values = {
        "year":        f"{date.year:04d}",
        "month":       f"{date.month:02d}",
        "day":         f"{date.day:02d}",
        "i_month":     str(date.month),
        "i_day":       str(date.day),
        "short_year":  f"{date.year % 100:02d}",
        "y_day":       f"{date.timetuple().tm_yday:03d}",
        "title":       slug,
        "slug":        slug,
        "categories":  "/".join(slugify(c) for c in categories),
        "output_ext":  OUTPUT_EXT,
    }
    return expand(override or permalink, values)


def page_url(relative_path: str, override: Optional[str] = None) -> str:
    """URL of a page: its source path with an .html extension; index files map to their directory."""
    path = PurePosixPath(relative_path)
    if path.suffix.lower() in PAGE_EXTENSIONS:
        path = path.with_suffix(OUTPUT_EXT)
    values = {
        "path":       str(path.with_suffix("")),
        "basename":   path.stem,
        "output_ext": OUTPUT_EXT,
    }
    if override:
        return expand(override, values)
    if path.name == "index" + OUTPUT_EXT:
        return normalize_url(str(path.parent) + "/")
    return normalize_url(str(path))


def output_path(destination: Path, url: str) -> Path:
    """File written for a URL: directory URLs get index.html, extensionless URLs get .html."""
    relative = url.lstrip("/")
    if not relative or url.endswith("/"):
        return destination / relative / "index.html"
    if not PurePosixPath(relative).suffix:
        relative += OUTPUT_EXT
    return destination / relative


def output_key(url: str) -> str:
    """Destination-relative file a URL writes; distinct URLs may share one ('/about', '/about.html')."""
    return output_path(PurePosixPath("/"), url).as_posix()
