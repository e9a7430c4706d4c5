"""Unit tests for core/pipeline.py: full builds against a tmp_path site and an in-memory manifest"""

from sqlmodel import Session

from mdsite.core.pipeline import GENERATED_INDEX, run_build
from mdsite.crud.database import init_db, make_engine
from mdsite.crud.pages import list_pages


SITE = {
    "_layouts/default.html": "<html>{{ content }}</html>",
    "_layouts/post.html": "---\nlayout: default\n---\n<article>{{ content }}</article>",
    "_posts/2024-01-01-hello.md": "---\ntitle: Hello\nlayout: post\n---\nHi {{ page.title }}\n",
    "_posts/2024-01-15-second.md": "---\ntitle: Second\nlayout: post\n---\nMore {% include note.html %}\n",
    "_includes/note.html": "<em>note</em>",
    "about.html": "---\ntitle: About\n---\n<h1>{{ page.title }}</h1>",
}


def _read(tmp_path, relative):
    return (tmp_path / "_site" / relative).read_text(encoding="utf-8")


def test_build_renders_posts_pages_and_generated_index(make_site, engine, now, tmp_path):
    report = run_build(make_site(SITE), engine, now)

    assert report.ok, report.failures
    assert report.counts() == {"created": 4, "updated": 0, "unchanged": 0}
    assert _read(tmp_path, "2024/01/01/hello.html") == "<html><article><p>Hi Hello</p>\n</article></html>"
    assert _read(tmp_path, "2024/01/15/second.html") == \
        "<html><article><p>More <em>note</em></p>\n</article></html>"
    assert _read(tmp_path, "about.html") == "<h1>About</h1>"

    index = _read(tmp_path, "index.html")
    assert index.startswith("<html>") and index.endswith("</html>")
    assert index.index("Second") < index.index("Hello")
    assert 'href="/2024/01/01/hello.html"' in index
    assert "Jan 01, 2024" in index


def test_build_records_manifest(make_site, engine, now):
    run_build(make_site(SITE), engine, now)
    with Session(engine) as session:
        entries = {p.url: p.source for p in list_pages(session)}
    assert entries == {
        "/": GENERATED_INDEX,
        "/2024/01/01/hello.html": "_posts/2024-01-01-hello.md",
        "/2024/01/15/second.html": "_posts/2024-01-15-second.md",
        "/about.html": "about.html",
    }


def test_malformed_document_does_not_stop_the_build(make_site, engine, now, tmp_path):
    files = dict(SITE)
    files["_posts/2024-01-10-broken.md"] = "---\ntitle: Broken\nno closing delimiter\n"
    report = run_build(make_site(files), engine, now)

    assert not report.ok
    assert [(f.kind, f.path.endswith("2024-01-10-broken.md")) for f in report.failures] == \
        [("MalformedFrontMatter", True)]
    assert str(report.failures[0]).split(": ")[1] == "MalformedFrontMatter"
    assert len(report.pages) == 4
    assert (tmp_path / "_site/2024/01/01/hello.html").exists()


def test_rebuild_without_changes_is_unchanged(make_site, engine, now, tmp_path):
    settings = make_site(SITE)
    run_build(settings, engine, now)
    output = tmp_path / "_site/about.html"
    mtime = output.stat().st_mtime_ns

    report = run_build(settings, engine, now)
    assert report.counts() == {"created": 0, "updated": 0, "unchanged": 4}
    assert output.stat().st_mtime_ns == mtime


def test_rebuild_updates_changed_and_removes_deleted(make_site, engine, now, tmp_path, write):
    settings = make_site(SITE)
    run_build(settings, engine, now)

    write({"about.html": "---\ntitle: About us\n---\n<h1>{{ page.title }}</h1>"})
    (tmp_path / "_posts/2024-01-15-second.md").unlink()
    report = run_build(settings, engine, now)

    statuses = {p.url: p.status for p in report.pages}
    assert statuses["/about.html"] == "updated"
    assert statuses["/2024/01/01/hello.html"] == "unchanged"
    assert statuses["/"] == "updated"
    assert report.removed == ["/2024/01/15/second.html"]
    assert not (tmp_path / "_site/2024/01/15/second.html").exists()
    assert _read(tmp_path, "about.html") == "<h1>About us</h1>"


def test_failed_document_keeps_previous_output(make_site, engine, now, tmp_path, write):
    settings = make_site(SITE)
    run_build(settings, engine, now)

    write({"about.html": "---\ntitle: [oops\n---\n"})
    report = run_build(settings, engine, now)

    assert [f.kind for f in report.failures] == ["MalformedFrontMatter"]
    assert report.removed == []
    assert _read(tmp_path, "about.html") == "<h1>About</h1>"


def test_missing_output_file_is_rewritten(make_site, engine, now, tmp_path):
    settings = make_site(SITE)
    run_build(settings, engine, now)
    (tmp_path / "_site/about.html").unlink()

    report = run_build(settings, engine, now)
    assert {p.url: p.status for p in report.pages}["/about.html"] == "created"
    assert _read(tmp_path, "about.html") == "<h1>About</h1>"


def test_parallel_build_matches_sequential(make_site, now, tmp_path):
    files = dict(SITE)
    for day in range(1, 21):
        files[f"_posts/2023-05-{day:02d}-p{day}.md"] = f"---\ntitle: P{day}\nlayout: post\n---\nPost {day}\n"

    outputs = {}
    for workers in (1, 4):
        engine = make_engine("sqlite://")
        init_db(engine)
        settings = make_site(files, workers=workers, destination=str(tmp_path / f"out{workers}"))
        report = run_build(settings, engine, now)
        assert report.ok
        outputs[workers] = (
            [p.url for p in report.pages],
            {p.relative_to(tmp_path / f"out{workers}"): p.read_text() for p in (tmp_path / f"out{workers}").rglob("*.html")},
        )
    assert outputs[1] == outputs[4]


def test_page_claiming_a_post_url_is_a_duplicate(make_site, engine, now):
    files = dict(SITE)
    files["clash.html"] = "---\npermalink: /2024/01/01/hello.html\n---\nclash"
    report = run_build(make_site(files), engine, now)
    assert [(f.kind, f.path.endswith("clash.html")) for f in report.failures] == [("DuplicateUrl", True)]


def test_source_index_replaces_generated_listing(make_site, engine, now, tmp_path):
    files = dict(SITE)
    files["index.html"] = "---\nlayout: default\n---\n{% for post in posts %}[{{ post.title }}]{% endfor %}"
    report = run_build(make_site(files), engine, now)
    assert report.ok
    assert _read(tmp_path, "index.html") == "<html>[Second][Hello]</html>"


def test_generated_listing_uses_index_layout(make_site, engine, now, tmp_path):
    files = dict(SITE)
    files["_layouts/home.html"] = "<main>{{ page.title }}{{ content }}</main>"
    run_build(make_site(files, index_layout="home", title="Notes"), engine, now)
    assert _read(tmp_path, "index.html").startswith("<main>Notes<ul")


def test_render_failures_are_collected_per_page(make_site, engine, now):
    files = dict(SITE)
    files["strict.html"] = "---\n---\n{{ page.nope }}"
    files["nolayout.html"] = "---\nlayout: missing\n---\nx"
    report = run_build(make_site(files, strict_variables=True), engine, now)
    kinds = sorted((f.kind, f.path.rsplit("/", 1)[-1]) for f in report.failures)
    assert kinds == [("LayoutNotFound", "nolayout.html"), ("UnresolvedReference", "strict.html")]
    assert len(report.pages) == 4


def test_strict_build_succeeds_when_everything_resolves(make_site, engine, now):
    assert run_build(make_site(SITE, strict_variables=True), engine, now).ok


def test_urls_sharing_an_output_file_are_duplicates(make_site, engine, now, tmp_path):
    files = dict(SITE)
    files["other.html"] = "---\npermalink: /about\n---\nfrom other"
    files["blog/index.html"] = "---\n---\nblog"
    files["posts.html"] = "---\npermalink: /blog/index.html\n---\nposts"
    report = run_build(make_site(files), engine, now)

    assert sorted((f.kind, f.path.rsplit("/", 1)[-1]) for f in report.failures) == \
        [("DuplicateUrl", "other.html"), ("DuplicateUrl", "posts.html")]
    outputs = [p.output for p in report.pages]
    assert len(outputs) == len(set(outputs))
    assert _read(tmp_path, "about.html") == "<h1>About</h1>"
    assert _read(tmp_path, "blog/index.html") == "blog"


def test_prune_keeps_file_rewritten_under_another_url(make_site, engine, now, tmp_path):
    settings = make_site(SITE)
    run_build(settings, engine, now)

    (tmp_path / "about.html").unlink()
    (tmp_path / "other.html").write_text("---\npermalink: /about\n---\nfrom other", encoding="utf-8")
    report = run_build(settings, engine, now)

    assert report.ok, report.failures
    assert report.removed == ["/about.html"]
    assert _read(tmp_path, "about.html") == "from other"


def test_unwritable_output_is_reported_and_build_continues(make_site, engine, now, tmp_path):
    files = dict(SITE)
    files["a.html"] = "---\npermalink: /x.html\n---\nx"
    files["b.html"] = "---\npermalink: /x.html/y.html\n---\ny"
    report = run_build(make_site(files), engine, now)

    assert [(f.kind, f.path.rsplit("/", 1)[-1]) for f in report.failures] == [("UnwritableOutput", "b.html")]
    assert _read(tmp_path, "x.html") == "x"
    assert _read(tmp_path, "about.html") == "<h1>About</h1>"
    with Session(engine) as session:
        urls = {p.url for p in list_pages(session)}
    assert "/x.html" in urls and "/x.html/y.html" not in urls
    assert "/about.html" in urls
