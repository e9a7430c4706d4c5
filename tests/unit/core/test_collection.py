"""Unit tests for core/collection.py"""

import os
from datetime import datetime
from pathlib import Path

import pytest

from mdsite.core.collection import Collection, load_posts, make_excerpt, parse_post_name
from mdsite.errors import DuplicateUrl, InvalidPostName, MalformedFrontMatter


def _post(title: str, **fm) -> str:
    lines = [f"title: {title}"] + [f"{k}: {v}" for k, v in fm.items()]
    return "---\n" + "\n".join(lines) + "\n---\nBody of " + title + ".\n"


# --- parse_post_name ---

def test_parse_post_name():
    when, slug = parse_post_name(Path("_posts/2024-01-15-hello-world.md"))
    assert when == datetime(2024, 1, 15)
    assert slug == "hello-world"


@pytest.mark.parametrize("name", ["not-a-date-slug.md", "2024-01-15.md", "2024-1-15-x.md", "2024-02-30-x.md"])
def test_parse_post_name_rejects(name):
    with pytest.raises(InvalidPostName):
        parse_post_name(Path(name))


# --- load_posts ---

def test_posts_ordered_newest_first(make_site, converter, now):
    settings = make_site({
        "_posts/2024-01-01-a.md": _post("A"),
        "_posts/2024-01-15-b.md": _post("B"),
        "_posts/2023-12-31-c.md": _post("C"),
    })
    collection, failures = load_posts(settings, converter, now)
    assert failures == []
    assert [p.date for p in collection.all()] == [
        datetime(2024, 1, 15), datetime(2024, 1, 1), datetime(2023, 12, 31)]


def test_equal_dates_ordered_by_filename(make_site, converter, now):
    settings = make_site({
        "_posts/2024-01-01-zebra.md": _post("Z"),
        "_posts/2024-01-01-apple.md": _post("A"),
        "_posts/2024-01-02-mango.md": _post("M"),
    })
    collection, _ = load_posts(settings, converter, now)
    assert [p.slug for p in collection.all()] == ["mango", "apple", "zebra"]


def test_invalid_post_name_is_reported_and_skipped(make_site, converter, now):
    settings = make_site({
        "_posts/not-a-date-slug.md": _post("Bad"),
        "_posts/2024-01-01-good.md": _post("Good"),
    })
    collection, failures = load_posts(settings, converter, now)
    assert [p.slug for p in collection.all()] == ["good"]
    assert len(failures) == 1
    assert isinstance(failures[0], InvalidPostName)
    assert failures[0].path.endswith("not-a-date-slug.md")


def test_malformed_front_matter_is_reported_and_skipped(make_site, converter, now):
    settings = make_site({
        "_posts/2024-01-01-broken.md": "---\ntitle: Broken\nno closing line\n",
        "_posts/2024-01-02-fine.md": _post("Fine"),
    })
    collection, failures = load_posts(settings, converter, now)
    assert len(collection) == 1
    assert [type(f) for f in failures] == [MalformedFrontMatter]


def test_post_fields_derived_from_name_and_front_matter(make_site, converter, now):
    settings = make_site({
        "_posts/2024-01-05-hello-world.md": "---\ncategories: [Tech News]\ntags: py web\n---\nHi\n",
    })
    collection, _ = load_posts(settings, converter, now)
    post = collection.all()[0]
    assert post.title == "Hello World"
    assert post.slug == "hello-world"
    assert post.categories == ("Tech News",)
    assert post.tags == ("py", "web")
    assert post.url == "/tech-news/2024/01/05/hello-world.html"
    assert post.relative_path == "_posts/2024-01-05-hello-world.md"


def test_front_matter_date_overrides_filename(make_site, converter, now):
    settings = make_site({"_posts/2024-01-01-moved.md": _post("Moved", date="2024-02-03 10:30:00")})
    collection, _ = load_posts(settings, converter, now)
    post = collection.all()[0]
    assert post.date == datetime(2024, 2, 3, 10, 30)
    assert post.url == "/2024/02/03/moved.html"


def test_invalid_front_matter_date(make_site, converter, now):
    settings = make_site({"_posts/2024-01-01-x.md": _post("X", date="someday")})
    collection, failures = load_posts(settings, converter, now)
    assert len(collection) == 0
    assert isinstance(failures[0], MalformedFrontMatter)


def test_permalink_styles(make_site, converter, now):
    settings = make_site({"_posts/2024-03-09-x.md": _post("X")}, permalink="pretty")
    collection, _ = load_posts(settings, converter, now)
    assert collection.all()[0].url == "/2024/03/09/x/"


def test_front_matter_permalink(make_site, converter, now):
    settings = make_site({"_posts/2024-03-09-x.md": _post("X", permalink="/notes/:title/")})
    collection, _ = load_posts(settings, converter, now)
    assert collection.all()[0].url == "/notes/x/"


def test_unpublished_and_future_posts_skipped(make_site, converter, now):
    settings = make_site({
        "_posts/2024-01-01-hidden.md": _post("Hidden", published="false"),
        "_posts/2030-01-01-later.md": _post("Later"),
        "_posts/2024-01-02-shown.md": _post("Shown"),
    })
    collection, failures = load_posts(settings, converter, now)
    assert [p.slug for p in collection] == ["shown"]
    assert failures == []


def test_future_posts_included_when_enabled(make_site, converter, now):
    settings = make_site({"_posts/2030-01-01-later.md": _post("Later")}, future=True)
    collection, _ = load_posts(settings, converter, now)
    assert [p.slug for p in collection] == ["later"]


def test_drafts_only_when_enabled(make_site, converter, now, tmp_path):
    """Drafts are dated by modification time and only loaded when enabled."""
    files = {"_drafts/idea.md": _post("Idea"), "_posts/2024-01-01-a.md": _post("A")}
    collection, _ = load_posts(make_site(files), converter, now)
    assert [p.slug for p in collection] == ["a"]

    os.utime(tmp_path / "_drafts/idea.md", (datetime(2024, 5, 1).timestamp(),) * 2)
    collection, _ = load_posts(make_site({}, drafts=True), converter, now)
    assert [(p.slug, p.draft) for p in collection] == [("idea", True), ("a", False)]


def test_duplicate_url_reported_for_later_post(make_site, converter, now):
    settings = make_site({
        "_posts/2024-01-01-one.md": _post("One", permalink="/same/"),
        "_posts/2024-01-02-two.md": _post("Two", permalink="/same/"),
    })
    collection, failures = load_posts(settings, converter, now)
    assert [p.slug for p in collection] == ["one"]
    assert isinstance(failures[0], DuplicateUrl)
    assert failures[0].path.endswith("2024-01-02-two.md")


def test_posts_writing_the_same_file_are_duplicates(make_site, converter, now):
    settings = make_site({
        "_posts/2024-01-01-one.md": _post("One", permalink="/same.html"),
        "_posts/2024-01-02-two.md": _post("Two", permalink="/same"),
    })
    collection, failures = load_posts(settings, converter, now)
    assert [p.slug for p in collection] == ["one"]
    assert [type(f) for f in failures] == [DuplicateUrl]
    assert failures[0].path.endswith("2024-01-02-two.md")


def test_post_content_keeps_template_spans(make_site, converter, now):
    settings = make_site({"_posts/2024-01-01-t.md": "---\ntitle: T\n---\nHi *{{ page.title }}*\n"})
    collection, _ = load_posts(settings, converter, now)
    assert collection.all()[0].content == "<p>Hi <em>{{ page.title }}</em></p>\n"


# --- Collection ---

def test_neighbours_tags_and_categories(make_site, converter, now):
    settings = make_site({
        "_posts/2024-01-01-a.md": _post("A", tags="[x, y]"),
        "_posts/2024-01-02-b.md": _post("B", tags="[y]", category="news"),
        "_posts/2024-01-03-c.md": _post("C"),
    })
    collection, _ = load_posts(settings, converter, now)
    c, b, a = collection.all()
    assert collection.neighbours(b) == (a, c)
    assert collection.neighbours(c) == (b, None)
    assert collection.neighbours(a) == (None, b)
    assert collection.tags() == {"x": (a,), "y": (b, a)}
    assert collection.categories() == {"news": (b,)}
    assert collection.excerpt(a) == a.excerpt


def test_empty_collection():
    collection = Collection()
    assert collection.all() == ()
    assert len(collection) == 0
    assert collection.tags() == {}


# --- excerpts ---

def test_excerpt_is_first_block(converter):
    assert make_excerpt("First para.\n\nSecond.", {}, "\n\n", converter, True) == "<p>First para.</p>\n"


def test_excerpt_from_front_matter(converter):
    assert make_excerpt("Body", {"excerpt": "Custom"}, "\n\n", converter, True) == "<p>Custom</p>\n"


def test_excerpt_custom_separator_and_spans_removed(converter):
    body = "Intro {{ page.title }} line\nstill intro\n<!--more-->\nRest"
    assert make_excerpt(body, {}, "<!--more-->", converter, True) == "<p>Intro  line\nstill intro</p>\n"


def test_excerpt_of_html_post_is_not_converted(converter):
    assert make_excerpt("<b>Hi</b>\n\nMore", {}, "\n\n", converter, False) == "<b>Hi</b>"


def test_excerpt_empty_body(converter):
    assert make_excerpt("", {}, "\n\n", converter, True) == ""
