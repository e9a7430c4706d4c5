"""Render context: scoped variable frames with total (non-raising) lookups"""

from collections.abc import Mapping, Sequence
from contextlib import contextmanager
from datetime import date
from typing import Any, Iterator, Optional

from mdsite.errors import CyclicInclude, RenderError


class _Sentinel:
    def __init__(self, name: str):
        self._name = name

    def __repr__(self) -> str:
        return self._name

    def __bool__(self) -> bool:
        return False


MISSING = _Sentinel("MISSING")     # lookup found nothing
EMPTY = _Sentinel("empty")         # the `empty` keyword in comparisons


def is_truthy(value: Any) -> bool:
    """Only nil, false and missing values are falsy; empty strings and lists are truthy."""
    return value is not None and value is not False and value is not MISSING


def resolve_key(value: Any, key: Any) -> Any:
    """Look up one key/index/pseudo-key on a value; returns MISSING instead of raising."""
    if hasattr(value, "to_liquid"):
        value = value.to_liquid()
    if isinstance(value, Mapping):
        if key in value:
            return value[key]
        if key == "size":
            return len(value)
        return MISSING
    if isinstance(value, Sequence) and not isinstance(value, str):
        if isinstance(key, int) or (isinstance(key, str) and key.lstrip("-").isdigit()):
            try:
                return value[int(key)]
            except IndexError:
                return MISSING
        if key == "size":
            return len(value)
        if key == "first":
            return value[0] if value else None
        if key == "last":
            return value[-1] if value else None
        return MISSING
    if isinstance(value, str) and key == "size":
        return len(value)
    return MISSING


def to_output(value: Any) -> str:
    """String form of a value inserted by an output span."""
    if value is None or value is MISSING:
        return ""
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, Sequence) and not isinstance(value, str):
        return "".join(to_output(v) for v in value)
    if isinstance(value, date):
        return value.isoformat(sep=" ") if hasattr(value, "hour") else value.isoformat()
    return str(value)


class Context:
    """Variables visible to a render.

    Globals are never written. Frame 0 holds template-level assignments; loops and
    includes push a frame that is popped when they finish.
    """

    def __init__(self, environment, variables: Mapping[str, Any]):
        self.environment = environment
        self.strict = environment.strict_variables
        self._globals = variables
        self._frames: list[dict[str, Any]] = [{}]
        self._includes: list[str] = []
        self._templates: list[str] = []
        self.line: Optional[int] = None

    @property
    def template_name(self) -> str:
        return self._templates[-1] if self._templates else "<string>"

    def lookup(self, name: str) -> Any:
        for frame in reversed(self._frames):
            if name in frame:
                return frame[name]
        return self._globals.get(name, MISSING)

    def resolve(self, root: str, keys: Sequence[Any] = ()) -> Any:
        value = self.lookup(root)
        for key in keys:
            if value is MISSING or value is None:
                return MISSING
            value = resolve_key(value, key)
        return value

    def assign(self, name: str, value: Any) -> None:
        self._frames[0][name] = value

    @contextmanager
    def scope(self, variables: Mapping[str, Any]) -> Iterator[None]:
        self._frames.append(dict(variables))
        try:
            yield
        finally:
            self._frames.pop()

    @contextmanager
    def rendering(self, template_name: str) -> Iterator[None]:
        self._templates.append(template_name)
        line = self.line
        try:
            yield
        finally:
            self._templates.pop()
            self.line = line

    @contextmanager
    def including(self, name: str) -> Iterator[None]:
        if name in self._includes:
            chain = " -> ".join(self._includes + [name])
            raise CyclicInclude(f"include cycle: {chain}", self.template_name, self.line)
        self._includes.append(name)
        try:
            yield
        finally:
            self._includes.pop()

    def apply_filter(self, name: str, value: Any, args: list[Any]) -> Any:
        fn = self.environment.filters[name]
        try:
            if getattr(fn, "takes_context", False):
                return fn(self, value, *args)
            return fn(value, *args)
        except RenderError:
            raise
        except (TypeError, ValueError, ArithmeticError, AttributeError, KeyError) as e:
            raise RenderError(f"filter '{name}' failed: {e}", self.template_name, self.line) from e
