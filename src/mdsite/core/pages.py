"""Discovery of pages, layouts and data files in the site source"""

import fnmatch
import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from mdsite.config import CONFIG_FILE, Settings
from mdsite.core.frontmatter import has_front_matter, parse_front_matter, read_document, read_text
from mdsite.core.models import PAGE_EXTENSIONS, Layout, Page
from mdsite.core.permalink import page_url
from mdsite.core.template.environment import Environment
from mdsite.errors import MalformedData, SiteError


logger = logging.getLogger(__name__)


def _excluded(relative: Path, patterns: list[str]) -> bool:
    posix = relative.as_posix()
    return any(fnmatch.fnmatch(posix, pat) or fnmatch.fnmatch(relative.name, pat) for pat in patterns)


def discover_page_files(settings: Settings) -> list[Path]:
    """Return sorted page candidates: page extensions, outside _/. dirs, destination and excludes."""
    root = settings.source_path
    destination = settings.destination_path.resolve()
    files = []
    for path in root.rglob("*"):
        if not path.is_file() or path.suffix.lower() not in PAGE_EXTENSIONS:
            continue
        relative = path.relative_to(root)
        if any(part.startswith(("_", ".")) for part in relative.parts):
            continue
        if destination in path.resolve().parents:
            continue
        if relative.name == CONFIG_FILE or _excluded(relative, settings.exclude):
            continue
        files.append(path)
    return sorted(files)


def load_pages(settings: Settings) -> tuple[list[Page], list[SiteError]]:
    """Read every page with front matter; files without front matter are static and skipped."""
    root = settings.source_path
    pages: list[Page] = []
    failures: list[SiteError] = []
    for path in discover_page_files(settings):
        try:
            text = read_text(path)
            if not has_front_matter(text):
                logger.debug("Skipping static file %s", path)
                continue
            fm, body = parse_front_matter(text, path)
        except SiteError as e:
            failures.append(e.at(path))
            continue
        relative = path.relative_to(root).as_posix()
        url = page_url(relative, fm.get("permalink"))
        pages.append(Page(path, relative, MappingProxyType(fm), body, url))
    logger.info("Loaded %d page(s), %d failure(s)", len(pages), len(failures))
    return pages, failures


def load_layouts(settings: Settings, environment: Environment) -> tuple[dict[str, Layout], list[SiteError]]:
    """Read and parse every layout; a layout that fails is left out and reported."""
    directory = settings.source_path / settings.layouts_dir
    layouts: dict[str, Layout] = {}
    failures: list[SiteError] = []
    if not directory.is_dir():
        return layouts, failures

    for path in sorted(directory.rglob("*")):
        if not path.is_file() or path.suffix.lower() not in PAGE_EXTENSIONS:
            continue
        name = path.relative_to(directory).with_suffix("").as_posix()
        try:
            doc = read_document(path, settings.source_path)
            template = environment.from_string(doc.body, doc.relative_path)
        except SiteError as e:
            failures.append(e.at(path))
            continue
        layouts[name] = Layout(name, path, doc.front_matter, template)
    logger.info("Loaded %d layout(s)", len(layouts))
    return layouts, failures


def load_data(settings: Settings) -> tuple[dict[str, Any], list[SiteError]]:
    """Load YAML/JSON files of the data directory keyed by file stem (nested dirs nest keys)."""
    directory = settings.source_path / settings.data_dir
    data: dict[str, Any] = {}
    failures: list[SiteError] = []
    if not directory.is_dir():
        return data, failures

    for path in sorted(directory.rglob("*")):
        suffix = path.suffix.lower()
        if not path.is_file() or suffix not in (".yml", ".yaml", ".json"):
            continue
        try:
            text = read_text(path)
            value = json.loads(text) if suffix == ".json" else yaml.safe_load(text)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            failures.append(MalformedData(f"invalid data file: {e}", path))
            continue
        except SiteError as e:
            failures.append(e.at(path))
            continue
        target = data
        for part in path.relative_to(directory).parent.parts:
            target = target.setdefault(part, {})
        target[path.stem] = value
    return data, failures
