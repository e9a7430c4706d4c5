"""Build orchestration: load, validate URLs, render (optionally in parallel), write, prune"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy.engine import Engine
from sqlmodel import Session

from mdsite.config import Settings
from mdsite.core.collection import Collection, load_posts
from mdsite.core.markup import MarkupConverter
from mdsite.core.models import Layout, Page
from mdsite.core.pages import load_data, load_layouts, load_pages
from mdsite.core.permalink import output_key, output_path
from mdsite.core.render import Renderer
from mdsite.core.site import SiteContext
from mdsite.core.template.environment import Environment
from mdsite.core.utils.hashing import sha256
from mdsite.crud.pages import commit_page, get_by_url, remove_stale
from mdsite.errors import DuplicateUrl, SiteError, UnwritableOutput


logger = logging.getLogger(__name__)

GENERATED_INDEX = "<generated index>"
DEFAULT_INDEX_TEMPLATE = """\
<ul class="post-list">
{%- for post in posts %}
  <li>
    <span class="post-meta">{{ post.date | date: site.date_format }}</span>
    <a class="post-link" href="{{ post.url | relative_url }}">{{ post.title | escape }}</a>
    {{ post.excerpt }}
  </li>
{%- endfor %}
</ul>
"""


class BuildFailure(BaseModel):
    """One document that could not be built."""
    path: str
    kind: str
    message: str

    @classmethod
    def from_error(cls, error: SiteError) -> "BuildFailure":
        return cls(path=error.path or "<unknown>", kind=error.kind, message=error.message)

    def __str__(self) -> str:
        return f"{self.path}: {self.kind}: {self.message}"


class PageResult(BaseModel):
    """One written (or unchanged) output file."""
    url: str
    source: str
    output: str
    status: str     # created | updated | unchanged


class BuildReport(BaseModel):
    pages: list[PageResult] = Field(default_factory=list)
    failures: list[BuildFailure] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def counts(self) -> dict[str, int]:
        counts = {"created": 0, "updated": 0, "unchanged": 0}
        for page in self.pages:
            counts[page.status] += 1
        return counts


def generated_index(settings: Settings, layouts: dict[str, Layout]) -> Page:
    """Listing page used when no source page claims '/'."""
    layout = settings.index_layout or ("default" if "default" in layouts else None)
    return Page(
        path=settings.source_path / "index.html",
        relative_path=GENERATED_INDEX,
        front_matter=MappingProxyType({"title": settings.title, "layout": layout, "listing": True}),
        body=DEFAULT_INDEX_TEMPLATE,
        url="/",
    )


def claim_urls(collection: Collection, pages: list[Page]) -> tuple[list[Page], list[SiteError]]:
    """Keep pages whose output file is not already produced by a post or an earlier page."""
    claimed = {output_key(post.url): post.relative_path for post in collection.all()}
    kept, failures = [], []
    for page in pages:
        key = output_key(page.url)
        if key in claimed:
            failures.append(DuplicateUrl(f"URL {page.url} writes {key}, already produced by {claimed[key]}", page.path))
            continue
        claimed[key] = page.relative_path
        kept.append(page)
    return kept, failures


def _write_output(page: Page, output: Path, html: str) -> None:
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(html, encoding="utf-8")
    except OSError as e:
        raise UnwritableOutput(f"Cannot write {output}: {e.strerror or e}", page.path) from e


def _render_one(renderer: Renderer, site: SiteContext, page: Page) -> tuple[Page, Optional[str], Optional[SiteError]]:
    try:
        return page, renderer.render(page, site), None
    except SiteError as e:
        return page, None, e.at(page.path)


def render_pages(renderer: Renderer, site: SiteContext, pages: list[Page], workers: int = 1
                 ) -> list[tuple[Page, Optional[str], Optional[SiteError]]]:
    """Render pages in input order; a failed page yields an error instead of HTML."""
    if workers <= 1 or len(pages) <= 1:
        return [_render_one(renderer, site, page) for page in pages]
    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(lambda page: _render_one(renderer, site, page), pages))


def _relative_source(path: Optional[str], root: Path) -> str:
    if path is None:
        return "<unknown>"
    try:
        return Path(path).relative_to(root).as_posix()
    except ValueError:
        return path


def run_build(settings: Settings, engine: Engine, now: Optional[datetime] = None) -> BuildReport:
    """Build the whole site; per-document failures are collected, never raised."""
    now = now or datetime.now()
    root = settings.source_path
    destination = settings.destination_path
    errors: list[SiteError] = []

    converter = MarkupConverter(settings.parser_config)
    environment = Environment(root / settings.includes_dir, settings.strict_variables, converter)

    data, failed = load_data(settings)
    errors += failed
    layouts, failed = load_layouts(settings, environment)
    errors += failed
    collection, failed = load_posts(settings, converter, now)
    errors += failed
    pages, failed = load_pages(settings)
    errors += failed

    pages, failed = claim_urls(collection, pages)
    errors += failed
    index_key = output_key("/")
    if not any(output_key(doc.url) == index_key for doc in [*collection, *pages]):
        pages.append(generated_index(settings, layouts))

    site = SiteContext(settings, collection, tuple(pages), data, now)
    renderer = Renderer(environment, layouts, settings.post_layout, settings.page_layout)
    rendered = render_pages(renderer, site, list(collection.all()) + pages, settings.workers)
    logger.info("Rendered %d document(s) with %d worker(s)", len(rendered), settings.workers)

    report = BuildReport()
    with Session(engine) as session:
        for page, html, error in rendered:
            if error is not None:
                errors.append(error)
                continue
            output = output_path(destination, page.url)
            digest = sha256(html)
            previous = get_by_url(session, page.url)
            same = previous is not None and \
                (previous.hash, previous.source, previous.output) == (digest, page.relative_path, str(output))
            rewrite = not (same and output.exists())
            if rewrite:
                try:
                    _write_output(page, output, html)
                except UnwritableOutput as e:
                    errors.append(e)
                    continue
            else:
                logger.debug("Unchanged %s", output)
            status = commit_page(session, page.url, page.relative_path, str(output), digest, now)
            if status == "unchanged" and rewrite:
                status = "created"
            report.pages.append(PageResult(url=page.url, source=page.relative_path,
                                           output=str(output), status=status))

        written = {p.output for p in report.pages}
        failed_sources = {_relative_source(e.path, root) for e in errors}
        for entry in remove_stale(session, (p.url for p in report.pages), failed_sources):
            stale = Path(entry.output)
            if entry.output not in written and stale.exists():
                stale.unlink()
            report.removed.append(entry.url)
        session.commit()

    report.failures = [BuildFailure.from_error(e) for e in errors]
    logger.info("Built %d page(s), removed %d, %d failure(s)", len(report.pages), len(report.removed), len(report.failures))
    return report
