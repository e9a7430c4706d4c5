"""Slug generation for post and page URLs"""

import re
import unicodedata


def slugify(text: str, ascii_only: bool = False) -> str:
    """Convert text to a lowercase, hyphen-separated URL-safe slug."""
    if ascii_only:
        text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r'[^\w\s-]', '', text)
    text = re.sub(r'[\s_]+', '-', text)
    return re.sub(r'-+', '-', text).strip('-')
