"""Expression parsing and evaluation for output spans and tag markup"""

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Callable, Optional

from mdsite.core.template.context import EMPTY, MISSING, Context, is_truthy
from mdsite.errors import RenderError, TemplateSyntaxError, UnresolvedReference


_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<string>"[^"]*"|'[^']*')
  | (?P<number>-?\d+(?:\.\d+)?)
  | (?P<range>\.\.)
  | (?P<op>==|!=|<>|<=|>=|<|>)
  | (?P<punct>[|:,.\[\]()])
  | (?P<word>[A-Za-z_][\w-]*\??)
""", re.VERBOSE)

KEYWORDS = {"true": True, "false": False, "nil": None, "null": None, "empty": EMPTY, "blank": EMPTY}
COMPARISONS = {"==", "!=", "<>", "<", ">", "<=", ">=", "contains"}


@dataclass(frozen=True)
class Tok:
    kind: str
    text: str


def lex(markup: str) -> list[Tok]:
    tokens = []
    pos = 0
    while pos < len(markup):
        m = _TOKEN_RE.match(markup, pos)
        if m is None:
            raise ValueError(f"unexpected character {markup[pos]!r} in {markup!r}")
        if m.lastgroup != "ws":
            tokens.append(Tok(m.lastgroup, m.group()))
        pos = m.end()
    return tokens


# --- expression tree ---

class Expression:
    def evaluate(self, context: Context) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class Literal(Expression):
    value: Any

    def evaluate(self, context):
        return self.value


@dataclass(frozen=True)
class Path(Expression):
    root:     str
    segments: tuple   # str / int keys or Expressions for [..] lookups

    @property
    def dotted(self) -> str:
        parts = [self.root]
        for seg in self.segments:
            parts.append(f"[{seg!r}]" if isinstance(seg, Expression) else str(seg))
        return ".".join(parts)

    def evaluate(self, context):
        keys = [seg.evaluate(context) if isinstance(seg, Expression) else seg for seg in self.segments]
        return context.resolve(self.root, keys)


@dataclass(frozen=True)
class Range(Expression):
    start: Expression
    stop:  Expression

    def evaluate(self, context):
        try:
            return list(range(int(self.start.evaluate(context)), int(self.stop.evaluate(context)) + 1))
        except (TypeError, ValueError) as e:
            raise RenderError(f"invalid range bounds: {e}", context.template_name, context.line) from e


@dataclass(frozen=True)
class Filtered(Expression):
    """A value expression followed by a left-to-right chain of filters."""
    expr:    Expression
    filters: tuple   # of (name, tuple[Expression, ...])

    @property
    def has_default(self) -> bool:
        return bool(self.filters) and self.filters[0][0] == "default"

    def evaluate(self, context, strict: bool = False):
        value = self.expr.evaluate(context)
        if value is MISSING:
            if strict and context.strict and not self.has_default:
                raise UnresolvedReference(f"'{self.expr.dotted}' is not defined",
                                          context.template_name, context.line)
            value = None
        for name, args in self.filters:
            values = [a.evaluate(context) for a in args]
            value = context.apply_filter(name, value, [None if v is MISSING else v for v in values])
        return value


def _is_empty(value: Any) -> bool:
    return value is None or value is MISSING or (
        isinstance(value, (str, Sequence, Mapping)) and len(value) == 0)


def _compare(op: str, left: Any, right: Any, context: Context) -> bool:
    left = None if left is MISSING else left
    right = None if right is MISSING else right
    if op in ("==", "!=", "<>"):
        if left is EMPTY or right is EMPTY:
            equal = _is_empty(right if left is EMPTY else left)
        else:
            equal = left == right
        return equal if op == "==" else not equal
    if op == "contains":
        if left is None or right is None:
            return False
        if isinstance(left, str):
            return str(right) in left
        if isinstance(left, (Sequence, Mapping)):
            return right in left
        return False
    try:
        if op == "<":
            return left < right
        if op == ">":
            return left > right
        if op == "<=":
            return left <= right
        return left >= right
    except TypeError as e:
        raise RenderError(f"cannot compare {left!r} {op} {right!r}",
                          context.template_name, context.line) from e


@dataclass(frozen=True)
class Comparison(Expression):
    op:    str
    left:  Expression
    right: Expression

    def evaluate(self, context):
        return _compare(self.op, self.left.evaluate(context), self.right.evaluate(context), context)


@dataclass(frozen=True)
class BoolOp(Expression):
    op:       str
    operands: tuple

    def evaluate(self, context):
        if self.op == "and":
            return all(is_truthy(o.evaluate(context)) for o in self.operands)
        return any(is_truthy(o.evaluate(context)) for o in self.operands)


@dataclass(frozen=True)
class Not(Expression):
    operand: Expression

    def evaluate(self, context):
        return not is_truthy(self.operand.evaluate(context))


# --- parser ---

class ExpressionParser:
    """Recursive-descent parser over the tokens of a single span's markup."""

    def __init__(self, markup: str, template: str = "<string>", line: Optional[int] = None,
                 filter_exists: Callable[[str], bool] = lambda name: True):
        self.markup = markup
        self.template = template
        self.line = line
        self.filter_exists = filter_exists
        try:
            self.tokens = lex(markup)
        except ValueError as e:
            raise self.error(str(e)) from e
        self.pos = 0

    def error(self, message: str) -> TemplateSyntaxError:
        return TemplateSyntaxError(message, self.template, self.line)

    def peek(self, offset: int = 0) -> Optional[Tok]:
        idx = self.pos + offset
        return self.tokens[idx] if idx < len(self.tokens) else None

    def next(self) -> Tok:
        tok = self.peek()
        if tok is None:
            raise self.error(f"unexpected end of expression in {self.markup!r}")
        self.pos += 1
        return tok

    def accept(self, text: str) -> bool:
        tok = self.peek()
        if tok is not None and tok.text == text and tok.kind != "string":
            self.pos += 1
            return True
        return False

    def expect(self, text: str) -> None:
        if not self.accept(text):
            found = self.peek()
            raise self.error(f"expected {text!r} but found {found.text if found else 'end'!r} in {self.markup!r}")

    def expect_end(self) -> None:
        tok = self.peek()
        if tok is not None:
            raise self.error(f"unexpected {tok.text!r} in {self.markup!r}")

    # grammar

    def primary(self) -> Expression:
        tok = self.next()
        if tok.kind == "string":
            return Literal(tok.text[1:-1])
        if tok.kind == "number":
            return Literal(float(tok.text) if "." in tok.text else int(tok.text))
        if tok.kind == "punct" and tok.text == "(":
            start = self.primary()
            if not self.accept(".."):
                raise self.error(f"expected '..' in range in {self.markup!r}")
            stop = self.primary()
            self.expect(")")
            return Range(start, stop)
        if tok.kind == "word":
            if tok.text in KEYWORDS:
                return Literal(KEYWORDS[tok.text])
            return self.path(tok.text)
        raise self.error(f"unexpected {tok.text!r} in {self.markup!r}")

    def path(self, root: str) -> Path:
        segments = []
        while True:
            if self.accept("."):
                tok = self.next()
                if tok.kind == "word":
                    segments.append(tok.text)
                elif tok.kind == "number" and "." not in tok.text:
                    segments.append(int(tok.text))
                else:
                    raise self.error(f"invalid key {tok.text!r} in {self.markup!r}")
            elif self.accept("["):
                key = self.primary()
                self.expect("]")
                segments.append(key.value if isinstance(key, Literal) else key)
            else:
                return Path(root, tuple(segments))

    def filtered(self) -> Filtered:
        expr = self.primary()
        filters = []
        while self.accept("|"):
            tok = self.next()
            if tok.kind != "word":
                raise self.error(f"expected a filter name after '|' in {self.markup!r}")
            if not self.filter_exists(tok.text):
                raise self.error(f"unknown filter '{tok.text}'")
            args = []
            if self.accept(":"):
                args.append(self.primary())
                while self.accept(","):
                    args.append(self.primary())
            filters.append((tok.text, tuple(args)))
        return Filtered(expr, tuple(filters))

    def comparison(self) -> Expression:
        left = self.primary()
        tok = self.peek()
        if tok is not None and tok.kind in ("op", "word") and tok.text in COMPARISONS:
            self.pos += 1
            return Comparison(tok.text, left, self.primary())
        return left

    def conjunction(self) -> Expression:
        operands = [self.comparison()]
        while self.accept("and"):
            operands.append(self.comparison())
        return operands[0] if len(operands) == 1 else BoolOp("and", tuple(operands))

    def condition(self) -> Expression:
        operands = [self.conjunction()]
        while self.accept("or"):
            operands.append(self.conjunction())
        return operands[0] if len(operands) == 1 else BoolOp("or", tuple(operands))


def parse_filtered(markup: str, template: str = "<string>", line: Optional[int] = None,
                   filter_exists: Callable[[str], bool] = lambda name: True) -> Filtered:
    parser = ExpressionParser(markup, template, line, filter_exists)
    expr = parser.filtered()
    parser.expect_end()
    return expr


def parse_condition(markup: str, template: str = "<string>", line: Optional[int] = None) -> Expression:
    parser = ExpressionParser(markup, template, line)
    expr = parser.condition()
    parser.expect_end()
    return expr


def parse_value(markup: str, template: str = "<string>", line: Optional[int] = None) -> Expression:
    parser = ExpressionParser(markup, template, line)
    expr = parser.primary()
    parser.expect_end()
    return expr
