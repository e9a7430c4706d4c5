"""Markdown-to-HTML conversion via markdown-it, with template spans shielded"""

import re

from markdown_it import MarkdownIt


TEMPLATE_SPAN_RE = re.compile(r"\{\{.*?\}\}|\{%.*?%\}", re.DOTALL)
PLACEHOLDER_MARKER = "MDSITESPAN"
_PARAGRAPH_RE = re.compile(r"<p\b[^>]*>.*?</p>", re.DOTALL)


def _make_parser(preset: str) -> MarkdownIt:
    """Build a MarkdownIt instance for the given preset name."""
    return MarkdownIt(preset, options_update={"linkify": False})


class MarkupConverter:
    """Pure markup -> HTML conversion; one instance is shared by all render threads."""

    def __init__(self, preset: str = "gfm-like"):
        self.preset = preset
        self._md = _make_parser(preset)

    def convert(self, text: str) -> str:
        return self._md.render(text)

    def convert_document(self, text: str) -> str:
        """Convert text whose template spans must reach the template engine verbatim.

        Spans are swapped for placeholders built from a marker absent from text,
        then restored after conversion; a tag span alone in its paragraph loses the <p> wrapper.
        """
        spans: list[str] = []
        marker = PLACEHOLDER_MARKER
        while marker in text:
            marker += "X"
        placeholder_re = re.compile(marker + r"(\d+)Z")
        block_re = re.compile("<p>" + marker + r"(\d+)Z</p>\n?")

        def stash(m: re.Match) -> str:
            spans.append(m.group(0))
            return f"{marker}{len(spans) - 1}Z"

        html = self.convert(TEMPLATE_SPAN_RE.sub(stash, text))
        if not spans:
            return html

        def restore(m: re.Match) -> str:
            i = int(m.group(1))
            return spans[i] if i < len(spans) else m.group(0)

        def unwrap(m: re.Match) -> str:
            span = restore(m)
            return span + "\n" if span.startswith("{%") else m.group(0)

        html = block_re.sub(unwrap, html)
        return placeholder_re.sub(restore, html)


def strip_template_spans(text: str) -> str:
    return TEMPLATE_SPAN_RE.sub("", text)


def first_paragraph(html: str) -> str:
    """Return the first <p> element of an HTML fragment, or the fragment itself."""
    m = _PARAGRAPH_RE.search(html)
    return m.group(0) if m else html
