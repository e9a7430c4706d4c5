"""Built-in template filters; each takes the piped value plus positional arguments"""

import html
import json
import math
import re
import urllib.parse
from collections.abc import Mapping, Sequence
from datetime import date, datetime, time
from typing import Any, Callable, Optional

from mdsite.core.markup import first_paragraph
from mdsite.core.template.context import MISSING, resolve_key, to_output
from mdsite.core.utils.slug import slugify as _slugify


FILTERS: dict[str, Callable] = {}


def register(name: str, takes_context: bool = False) -> Callable:
    """Add a filter to the registry; context filters receive the render Context first."""
    def wrap(fn: Callable) -> Callable:
        fn.takes_context = takes_context
        FILTERS[name] = fn
        return fn
    return wrap


def _str(value: Any) -> str:
    return to_output(value)


def _list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, Mapping):
        return [[k, v] for k, v in value.items()]
    if isinstance(value, Sequence) and not isinstance(value, str):
        return list(value)
    return [value]


def _num(value: Any) -> int | float:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if value is None:
        return 0
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        return float(text)


def _get(item: Any, key: Optional[str]) -> Any:
    if not key:
        return item
    value = resolve_key(item, key)
    return None if value is MISSING else value


def to_datetime(value: Any) -> Optional[datetime]:
    """Coerce dates, ISO strings, 'now'/'today' and timestamps to a datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value)
    text = str(value).strip()
    if text in ("now", "today"):
        return datetime.now()
    return datetime.fromisoformat(text)


# --- dates ---

@register("date")
def date_(value, fmt="%Y-%m-%d"):
    dt = to_datetime(value)
    return dt.strftime(fmt) if dt else value


@register("date_to_xmlschema")
def date_to_xmlschema(value):
    dt = to_datetime(value)
    return dt.isoformat() if dt else value


@register("date_to_rfc822")
def date_to_rfc822(value):
    dt = to_datetime(value)
    return dt.strftime("%a, %d %b %Y %H:%M:%S %z").rstrip() if dt else value


@register("date_to_string")
def date_to_string(value):
    dt = to_datetime(value)
    return dt.strftime("%d %b %Y") if dt else value


@register("date_to_long_string")
def date_to_long_string(value):
    dt = to_datetime(value)
    return dt.strftime("%d %B %Y") if dt else value


# --- escaping and html ---

@register("escape")
def escape(value):
    return html.escape(_str(value)) if value is not None else None


@register("xml_escape")
def xml_escape(value):
    return html.escape(_str(value))


@register("escape_once")
def escape_once(value):
    return html.escape(html.unescape(_str(value)))


@register("cgi_escape")
def cgi_escape(value):
    return urllib.parse.quote_plus(_str(value))


@register("uri_escape")
def uri_escape(value):
    return urllib.parse.quote(_str(value), safe="/:?#[]@!$&'()*+,;=%")


@register("strip_html")
def strip_html(value):
    text = re.sub(r"<(script|style)\b.*?</\1>", "", _str(value), flags=re.DOTALL | re.IGNORECASE)
    return re.sub(r"<!--.*?-->|<[^>]*>", "", text, flags=re.DOTALL)


@register("strip_newlines")
def strip_newlines(value):
    return re.sub(r"\r?\n", "", _str(value))


@register("newline_to_br")
def newline_to_br(value):
    return re.sub(r"\r?\n", "<br />\n", _str(value))


@register("excerpt")
def excerpt(value):
    return first_paragraph(_str(value))


@register("markdownify", takes_context=True)
def markdownify(context, value):
    return context.environment.converter.convert(_str(value))


# --- strings ---

@register("truncate")
def truncate(value, length=50, ellipsis="..."):
    text, length = _str(value), int(length)
    if len(text) <= length:
        return text
    return text[:max(length - len(ellipsis), 0)] + ellipsis


@register("truncatewords")
def truncatewords(value, words=15, ellipsis="..."):
    parts = _str(value).split()
    words = max(int(words), 1)
    if len(parts) <= words:
        return " ".join(parts)
    return " ".join(parts[:words]) + ellipsis


@register("number_of_words")
def number_of_words(value):
    return len(_str(value).split())


@register("upcase")
def upcase(value):
    return _str(value).upper()


@register("downcase")
def downcase(value):
    return _str(value).lower()


@register("capitalize")
def capitalize(value):
    return _str(value).capitalize()


@register("strip")
def strip(value):
    return _str(value).strip()


@register("lstrip")
def lstrip(value):
    return _str(value).lstrip()


@register("rstrip")
def rstrip(value):
    return _str(value).rstrip()


@register("append")
def append(value, suffix=""):
    return _str(value) + _str(suffix)


@register("prepend")
def prepend(value, prefix=""):
    return _str(prefix) + _str(value)


@register("replace")
def replace(value, old, new=""):
    return _str(value).replace(_str(old), _str(new))


@register("replace_first")
def replace_first(value, old, new=""):
    return _str(value).replace(_str(old), _str(new), 1)


@register("remove")
def remove(value, old):
    return _str(value).replace(_str(old), "")


@register("remove_first")
def remove_first(value, old):
    return _str(value).replace(_str(old), "", 1)


@register("split")
def split(value, sep=" "):
    text = _str(value)
    return text.split() if sep == " " else text.split(_str(sep))


@register("slugify")
def slugify(value, mode="default"):
    """mode 'latin' or 'ascii' transliterates accented letters to plain ASCII."""
    return _slugify(_str(value), ascii_only=_str(mode) in ("latin", "ascii"))


@register("default")
def default(value, fallback=None):
    if value is None or value is False or value == "" or value == [] or value == {}:
        return fallback
    return value


# --- sequences ---

@register("join")
def join(value, sep=" "):
    return _str(sep).join(_str(v) for v in _list(value))


@register("size")
def size(value):
    if value is None:
        return 0
    try:
        return len(value)
    except TypeError:
        return 0


@register("first")
def first(value):
    items = _list(value) if not isinstance(value, str) else list(value)
    return items[0] if items else None


@register("last")
def last(value):
    items = _list(value) if not isinstance(value, str) else list(value)
    return items[-1] if items else None


@register("reverse")
def reverse(value):
    return list(reversed(_list(value)))


@register("sort")
def sort(value, key=None):
    items = _list(value)
    # nil keys sort last
    return sorted(items, key=lambda item: (_get(item, key) is None, _get(item, key)))


@register("uniq")
def uniq(value):
    seen, out = [], []
    for item in _list(value):
        if item not in seen:
            seen.append(item)
            out.append(item)
    return out


@register("compact")
def compact(value):
    return [item for item in _list(value) if item is not None]


@register("concat")
def concat(value, other=None):
    return _list(value) + _list(other)


@register("map")
def map_(value, key):
    return [_get(item, key) for item in _list(value)]


@register("where")
def where(value, key, expected=None):
    items = _list(value)
    if expected is None:
        return [item for item in items if _get(item, key) not in (None, False)]
    out = []
    for item in items:
        field = _get(item, key)
        if field == expected or (isinstance(field, (list, tuple)) and expected in field):
            out.append(item)
    return out


# --- numbers ---

@register("plus")
def plus(value, other):
    return _num(value) + _num(other)


@register("minus")
def minus(value, other):
    return _num(value) - _num(other)


@register("times")
def times(value, other):
    return _num(value) * _num(other)


@register("divided_by")
def divided_by(value, other):
    divisor = _num(other)
    result = _num(value) / divisor
    return math.floor(result) if isinstance(divisor, int) and isinstance(_num(value), int) else result


@register("modulo")
def modulo(value, other):
    return _num(value) % _num(other)


@register("abs")
def abs_(value):
    return abs(_num(value))


@register("round")
def round_(value, digits=0):
    digits = int(digits)
    result = round(_num(value), digits)
    return int(result) if digits == 0 else result


@register("ceil")
def ceil(value):
    return math.ceil(_num(value))


@register("floor")
def floor(value):
    return math.floor(_num(value))


# --- urls and serialisation ---

@register("relative_url", takes_context=True)
def relative_url(context, value):
    baseurl = context.resolve("site", ["baseurl"]) or ""
    path = _str(value)
    if re.match(r"^[a-z][a-z0-9+.-]*://", path, re.IGNORECASE):
        return path
    joined = "/".join(part.strip("/") for part in (baseurl, path) if part and part.strip("/"))
    return "/" + joined + ("/" if path.endswith("/") and joined else "")


@register("absolute_url", takes_context=True)
def absolute_url(context, value):
    path = _str(value)
    if re.match(r"^[a-z][a-z0-9+.-]*://", path, re.IGNORECASE):
        return path
    site_url = context.resolve("site", ["url"]) or ""
    return str(site_url).rstrip("/") + relative_url(context, path)


@register("jsonify")
def jsonify(value):
    return json.dumps(value, default=str, ensure_ascii=False)
