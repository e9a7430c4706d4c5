"""Manifest persistence: record written pages, detect unchanged output, prune stale entries"""

from datetime import datetime
from typing import Iterable

from sqlmodel import Session, select

from mdsite.crud.models import RenderedPage


def get_by_url(session: Session, url: str) -> RenderedPage | None:
    """Return the manifest entry for url, or None if it was never built."""
    return session.get(RenderedPage, url)


def list_pages(session: Session) -> list[RenderedPage]:
    """Return all manifest entries ordered by URL."""
    return list(session.exec(select(RenderedPage).order_by(RenderedPage.url)).all())


def commit_page(
    session: Session,
    url: str,
    source: str,
    output: str,
    hash: str,
    built_at: datetime | None = None,
    ) -> str:
    """Upsert the entry for url.

    Returns 'created', 'updated', or 'unchanged' (same hash, source and output).
    Flushes but does not commit; the caller controls the transaction.
    """
    built_at = built_at or datetime.now()
    page = get_by_url(session, url)
    if page is None:
        session.add(RenderedPage(url=url, source=source, output=output, hash=hash, built_at=built_at))
        session.flush()
        return 'created'
    if (page.hash, page.source, page.output) == (hash, source, output):
        return 'unchanged'
    page.source = source
    page.output = output
    page.hash = hash
    page.built_at = built_at
    session.add(page)
    session.flush()
    return 'updated'


def remove_stale(session: Session, built_urls: Iterable[str], failed_sources: Iterable[str]) -> list[RenderedPage]:
    """Delete entries whose URL was not built this time.

    Entries of sources that failed this build are kept so their last good output survives.
    Returns the deleted entries.
    """
    built_urls, failed_sources = set(built_urls), set(failed_sources)
    stale = [p for p in list_pages(session) if p.url not in built_urls and p.source not in failed_sources]
    for page in stale:
        session.delete(page)
    session.flush()
    return stale
