"""Template tokenizer: splits source into text, output and tag tokens"""

import re
from dataclasses import dataclass

from mdsite.errors import TemplateSyntaxError, line_of


TEXT, OUTPUT, TAG = "text", "output", "tag"

_SPAN_RE = re.compile(r"\{\{(-?)(.*?)(-?)\}\}|\{%(-?)(.*?)(-?)%\}", re.DOTALL)
_VERBATIM_TAGS = ("raw", "comment")


@dataclass(frozen=True)
class Token:
    kind:   str
    value:  str     # raw text for TEXT; stripped inner markup for OUTPUT and TAG
    offset: int


def _check_text(source: str, start: int, end: int, name: str) -> None:
    """Raise if a text run contains an opening marker that never closes."""
    for marker, what in (("{{", "output"), ("{%", "tag")):
        idx = source.find(marker, start, end)
        if idx != -1:
            raise TemplateSyntaxError(f"{what} span opened with '{marker}' is never closed",
                                      name, line_of(source, idx))


def _end_of_verbatim(source: str, tag: str, pos: int, name: str, offset: int) -> re.Match:
    end_re = re.compile(r"\{%-?\s*end" + tag + r"\s*-?%\}")
    m = end_re.search(source, pos)
    if m is None:
        raise TemplateSyntaxError(f"'{tag}' tag was never closed", name, line_of(source, offset))
    return m


def tokenize(source: str, name: str = "<string>") -> list[Token]:
    """Split template source into tokens, applying '-' whitespace control."""
    tokens: list[Token] = []
    pos = 0
    trim_next = False

    def add_text(text: str, offset: int) -> None:
        nonlocal trim_next
        if trim_next:
            text = text.lstrip()
            trim_next = False
        if text:
            tokens.append(Token(TEXT, text, offset))

    while True:
        m = _SPAN_RE.search(source, pos)
        end = m.start() if m else len(source)
        _check_text(source, pos, end, name)
        add_text(source[pos:end], pos)
        if m is None:
            break

        if m.group(2) is not None:
            kind, left, inner, right = OUTPUT, m.group(1), m.group(2), m.group(3)
        else:
            kind, left, inner, right = TAG, m.group(4), m.group(5), m.group(6)

        if left and tokens and tokens[-1].kind == TEXT:
            last = tokens.pop()
            if stripped := last.value.rstrip():
                tokens.append(Token(TEXT, stripped, last.offset))

        inner = inner.strip()
        if not inner:
            raise TemplateSyntaxError(f"empty {kind} span", name, line_of(source, m.start()))

        word = inner.split()[0]
        if kind == TAG and word in _VERBATIM_TAGS:
            close = _end_of_verbatim(source, word, m.end(), name, m.start())
            if word == "raw":
                tokens.append(Token(TEXT, source[m.end():close.start()], m.end()))
            pos = close.end()
            trim_next = close.group(0).endswith("-%}")
            continue

        tokens.append(Token(kind, inner, m.start()))
        pos = m.end()
        trim_next = bool(right)

    return tokens
