"""CLI command implementations"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Annotated, Optional

import typer
from sqlmodel import Session

from mdsite.config import Settings, load_config
from mdsite.core.frontmatter import dump_front_matter
from mdsite.core.pipeline import BuildReport, run_build
from mdsite.core.utils.slug import slugify
from mdsite.crud.database import init_db, make_engine, reset_db
from mdsite.crud.pages import list_pages
from mdsite.logs import setup_logging


def _fail(msg: str, cause: Exception = None) -> None:
    """Print a user-friendly error to stderr and exit 1."""
    typer.echo(f"Error: {msg}", err=True)
    if cause:
        typer.echo(f"  {cause}", err=True)
    raise typer.Exit(1)


def _settings(overrides: dict = None) -> Settings:
    """Load config with standard CLI error handling."""
    try:
        return load_config(overrides=overrides)
    except ValueError as e:
        _fail(str(e))


def _echo_build(report: BuildReport, verbose: bool) -> None:
    """Print per-page status (verbose), failures, and a summary line."""
    if verbose:
        for page in report.pages:
            typer.echo(f"  {page.status}: {page.url} -> {page.output}")
        for url in report.removed:
            typer.echo(f"  removed: {url}")
    for failure in report.failures:
        typer.echo(str(failure), err=True)
    counts = report.counts()
    typer.echo(
        f"Build complete - "
        f"{counts['created']} created, "
        f"{counts['updated']} updated, "
        f"{counts['unchanged']} unchanged, "
        f"{len(report.removed)} removed, "
        f"{len(report.failures)} failed"
    )


def build_cmd(
    source: Annotated[Optional[str], typer.Argument(help="Site source directory")] = None,
    out: Annotated[Optional[str], typer.Option("--out-dir", help="Output directory")] = None,
    drafts: Annotated[Optional[bool], typer.Option("--drafts", help="Include posts from the drafts directory")] = None,
    future: Annotated[Optional[bool], typer.Option("--future", help="Include posts dated in the future")] = None,
    strict: Annotated[Optional[bool], typer.Option("--strict", help="Fail on unresolved template variables")] = None,
    workers: Annotated[Optional[int], typer.Option("--workers", min=1, help="Render threads")] = None,
    parser: Annotated[Optional[str], typer.Option("--parser-config", help="MarkdownIt preset name")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log progress and list every page")] = False,
    ):
    """Render the site: posts, pages and layouts -> HTML in the output directory."""
    setup_logging(logging.INFO if verbose else logging.WARNING)
    settings = _settings(overrides={
        "source": source,
        "destination": str(Path(out).resolve()) if out else None,
        "drafts": drafts, "future": future, "strict_variables": strict,
        "workers": workers, "parser_config": parser,
    })
    if not settings.source_path.is_dir():
        _fail(f"Source directory not found: {settings.source_path}")

    engine = make_engine(settings.database_url)
    init_db(engine)
    try:
        report = run_build(settings, engine)
    except Exception as e:
        _fail("Build failed", e)

    _echo_build(report, verbose)
    if not report.ok:
        raise typer.Exit(1)


def new_cmd(
    title: Annotated[str, typer.Argument(help="Post title")],
    source: Annotated[Optional[str], typer.Option("--source", help="Site source directory")] = None,
    date: Annotated[Optional[datetime], typer.Option("--date", help="Post date (default: now)")] = None,
    tags: Annotated[Optional[list[str]], typer.Option("--tag", help="Tag; repeat for several")] = None,
    layout: Annotated[Optional[str], typer.Option("--layout", help="Layout name")] = None,
    draft: Annotated[bool, typer.Option("--draft", help="Create in the drafts directory")] = False,
    ):
    """Create a post skeleton with front matter."""
    settings = _settings(overrides={"source": source})
    when = date or datetime.now().replace(microsecond=0)
    slug = slugify(title)
    if not slug:
        _fail(f"Title '{title}' does not produce a usable slug")

    if draft:
        path = settings.source_path / settings.drafts_dir / f"{slug}.md"
    else:
        path = settings.source_path / settings.posts_dir / f"{when:%Y-%m-%d}-{slug}.md"
    if path.exists():
        _fail(f"File already exists: {path}")

    front_matter = {"layout": layout or settings.post_layout or "post", "title": title,
                    "date": when}
    if tags:
        front_matter["tags"] = list(tags)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_front_matter(front_matter, "\n"), encoding="utf-8")
    typer.echo(f"Created {path}")


def list_cmd(
    source: Annotated[Optional[str], typer.Option("--source", help="Site source directory")] = None,
    ):
    """List pages recorded in the build manifest."""
    settings = _settings(overrides={"source": source})
    engine = make_engine(settings.database_url)
    init_db(engine)
    with Session(engine) as session:
        pages = list_pages(session)
    if not pages:
        typer.echo("No pages found in manifest. Run 'mdsite build' first.")
        raise typer.Exit(1)
    for page in pages:
        typer.echo(f"{page.url}\t{page.source}\t{page.built_at:%Y-%m-%d %H:%M:%S}")


def init_cmd(
    source: Annotated[Optional[str], typer.Option("--source", help="Site source directory")] = None,
    reset: Annotated[bool, typer.Option("--reset", help="Drop and recreate all tables")] = False,
    ):
    """Initialize the manifest schema. Use --reset to clear existing data."""
    settings = _settings(overrides={"source": source})
    engine = make_engine(settings.database_url)
    if reset:
        reset_db(engine)
        typer.echo("Existing data cleared.")
    else:
        init_db(engine)
    typer.echo(f"Database initialized at: {settings.database_url}")
