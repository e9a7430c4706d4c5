"""Front matter extraction and serialisation for source documents"""

import re
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

import yaml

from mdsite.core.models import Document
from mdsite.errors import MalformedFrontMatter, UnreadableDocument


DELIMITER = "---"
DELIMITER_RE = re.compile(r"^---[ \t]*\r?$", re.MULTILINE)


def has_front_matter(text: str) -> bool:
    """Return True if text opens with a front matter delimiter line."""
    first = text.lstrip("\ufeff").split("\n", 1)[0]
    return first.rstrip() == DELIMITER


def parse_front_matter(text: str, path: Optional[str | Path] = None) -> tuple[dict[str, Any], str]:
    """Return (front_matter, body) with the leading YAML block removed.

    Text that does not open with a delimiter line has no front matter and is all body.
    """
    text = text.lstrip("\ufeff")
    if not has_front_matter(text):
        return {}, text

    start = text.find("\n") + 1
    closing = DELIMITER_RE.search(text, start) if start else None
    if closing is None:
        raise MalformedFrontMatter("front matter is missing its closing '---' line", path)

    block = text[start:closing.start()]
    body = text[closing.end():]
    if body.startswith("\r\n"):
        body = body[2:]
    elif body.startswith("\n"):
        body = body[1:]

    try:
        fm = yaml.safe_load(block) if block.strip() else {}
    except yaml.YAMLError as e:
        raise MalformedFrontMatter(f"invalid YAML front matter: {e}", path) from e
    if fm is None:
        fm = {}
    if not isinstance(fm, dict):
        raise MalformedFrontMatter(
            f"front matter must be a mapping, got {type(fm).__name__}", path)
    return fm, body


def dump_front_matter(front_matter: Mapping[str, Any], body: str = "") -> str:
    """Serialise front matter and body into document text."""
    header = yaml.safe_dump(dict(front_matter), default_flow_style=False,
                            allow_unicode=True, sort_keys=False)
    return f"{DELIMITER}\n{header}{DELIMITER}\n{body}"


def read_text(path: Path) -> str:
    """Read a UTF-8 source file, raising UnreadableDocument on I/O or decode errors."""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise UnreadableDocument(f"cannot read file: {e}", path) from e


def read_document(path: Path, root: Path) -> Document:
    """Read and split a source file into a Document."""
    fm, body = parse_front_matter(read_text(path), path)
    return Document(
        path=path,
        relative_path=path.relative_to(root).as_posix(),
        front_matter=MappingProxyType(fm),
        body=body,
    )
