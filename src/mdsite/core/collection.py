"""Post collection: discovery, date/URL derivation, ordering and excerpts"""

import logging
import re
from datetime import date, datetime, time
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Optional

from mdsite.config import Settings
from mdsite.core.frontmatter import parse_front_matter, read_text
from mdsite.core.markup import MarkupConverter, strip_template_spans
from mdsite.core.models import MARKUP_EXTENSIONS, PAGE_EXTENSIONS, Post
from mdsite.core.permalink import output_key, post_url
from mdsite.core.utils.slug import slugify
from mdsite.errors import DuplicateUrl, InvalidPostName, MalformedFrontMatter, SiteError


logger = logging.getLogger(__name__)

POST_NAME_RE = re.compile(r"^(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})-(?P<slug>.+)$")


class Collection:
    """Read-only set of posts, ordered newest first."""

    def __init__(self, posts: Iterable[Post] = ()):
        ordered = sorted(posts, key=lambda p: p.path.name)
        ordered.sort(key=lambda p: p.date, reverse=True)     # stable: equal dates keep filename order
        self._posts = tuple(ordered)
        self._index = {p.url: i for i, p in enumerate(self._posts)}

    def __len__(self) -> int:
        return len(self._posts)

    def __iter__(self):
        return iter(self._posts)

    def all(self) -> tuple[Post, ...]:
        return self._posts

    def excerpt(self, post: Post) -> str:
        return post.excerpt

    def neighbours(self, post: Post) -> tuple[Optional[Post], Optional[Post]]:
        """Return (previous, next): the next older and next newer post."""
        i = self._index[post.url]
        previous = self._posts[i + 1] if i + 1 < len(self._posts) else None
        following = self._posts[i - 1] if i > 0 else None
        return previous, following

    def _group(self, attr: str) -> dict[str, tuple[Post, ...]]:
        groups: dict[str, list[Post]] = {}
        for post in self._posts:
            for name in getattr(post, attr):
                groups.setdefault(name, []).append(post)
        return {name: tuple(posts) for name, posts in sorted(groups.items())}

    def tags(self) -> dict[str, tuple[Post, ...]]:
        return self._group("tags")

    def categories(self) -> dict[str, tuple[Post, ...]]:
        return self._group("categories")


def parse_post_name(path: Path) -> tuple[datetime, str]:
    """Return (date, slug) from a YYYY-MM-DD-slug.ext filename."""
    m = POST_NAME_RE.match(path.stem)
    if m is None:
        raise InvalidPostName(f"post name '{path.name}' does not match YYYY-MM-DD-slug.ext", path)
    try:
        when = datetime(int(m["year"]), int(m["month"]), int(m["day"]))
    except ValueError as e:
        raise InvalidPostName(f"post name '{path.name}' has an invalid date: {e}", path) from e
    return when, m["slug"]


def _as_datetime(value: Any, path: Path) -> datetime:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo else value
    if isinstance(value, date):
        return datetime.combine(value, time())
    try:
        parsed = datetime.fromisoformat(str(value).strip())
    except ValueError as e:
        raise MalformedFrontMatter(f"invalid date {value!r}: {e}", path) from e
    return parsed.replace(tzinfo=None) if parsed.tzinfo else parsed


def _as_list(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(value.split())
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value if v is not None)
    return (str(value),)


def make_excerpt(body: str, fm: dict, separator: str, converter: MarkupConverter, markup: bool) -> str:
    """Excerpt HTML: front matter `excerpt`, else the body prefix before the separator."""
    if fm.get("excerpt") is not None:
        text = str(fm["excerpt"])
    else:
        text = body.lstrip("\n")
        if separator and separator in text:
            text = text.split(separator, 1)[0]
    text = strip_template_spans(text).strip()
    if not text:
        return ""
    return converter.convert(text) if markup else text


def read_post(path: Path, root: Path, settings: Settings, converter: MarkupConverter,
              draft: bool = False) -> Post:
    """Read and derive one post; raises InvalidPostName or MalformedFrontMatter."""
    if draft:
        name_date, name_slug = datetime.fromtimestamp(path.stat().st_mtime).replace(microsecond=0), path.stem
    else:
        name_date, name_slug = parse_post_name(path)

    fm, body = parse_front_matter(read_text(path), path)
    when = _as_datetime(fm["date"], path) if fm.get("date") is not None else name_date
    slug = slugify(str(fm.get("slug") or name_slug))
    categories = _as_list(fm.get("categories", fm.get("category")))
    markup = path.suffix.lower() in MARKUP_EXTENSIONS
    content = converter.convert_document(body) if markup else body

    return Post(
        path=path,
        relative_path=path.relative_to(root).as_posix(),
        front_matter=MappingProxyType(fm),
        body=body,
        url=post_url(settings.permalink, when, slug, categories, fm.get("permalink")),
        date=when,
        slug=slug,
        title=str(fm["title"]) if fm.get("title") is not None else name_slug.replace("-", " ").title(),
        categories=categories,
        tags=_as_list(fm.get("tags")),
        excerpt=make_excerpt(body, fm, settings.excerpt_separator, converter, markup),
        content=content,
        draft=draft,
    )


def _post_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.rglob("*")
                  if p.is_file() and p.suffix.lower() in PAGE_EXTENSIONS
                  and not any(part.startswith(".") for part in p.relative_to(directory).parts))


def load_posts(
    settings: Settings,
    converter: MarkupConverter,
    now: Optional[datetime] = None,
    ) -> tuple[Collection, list[SiteError]]:
    """Load every post (and draft, when enabled); failures are returned, not raised."""
    root = settings.source_path
    now = now or datetime.now()
    sources = [(p, False) for p in _post_files(root / settings.posts_dir)]
    if settings.drafts:
        sources += [(p, True) for p in _post_files(root / settings.drafts_dir)]

    posts: list[Post] = []
    failures: list[SiteError] = []
    claimed: dict[str, Path] = {}
    for path, draft in sources:
        try:
            post = read_post(path, root, settings, converter, draft)
        except SiteError as e:
            failures.append(e.at(path))
            continue
        if post.front_matter.get("published") is False:
            logger.debug("Skipping unpublished post %s", path)
            continue
        if post.date > now and not settings.future:
            logger.debug("Skipping future-dated post %s (%s)", path, post.date)
            continue
        key = output_key(post.url)
        if key in claimed:
            failures.append(DuplicateUrl(f"URL {post.url} writes {key}, already produced by {claimed[key]}", path))
            continue
        claimed[key] = path
        posts.append(post)

    logger.info("Loaded %d post(s), %d failure(s)", len(posts), len(failures))
    return Collection(posts), failures
