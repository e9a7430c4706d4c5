"""Single-pass template parser: token stream -> node tree"""

import re
from typing import Callable, Optional

from mdsite.core.template.expressions import Not, parse_condition, parse_filtered, parse_value
from mdsite.core.template.lexer import OUTPUT, TEXT, Token, tokenize
from mdsite.core.template.nodes import (
    AssignNode, BreakNode, CaptureNode, ContinueNode, ForNode,
    IfNode, IncludeNode, Node, OutputNode, TextNode,
)
from mdsite.errors import TemplateSyntaxError, line_of


_FOR_RE = re.compile(r"^([\w-]+)\s+in\s+(\(.*?\)|\S+)(.*)$", re.DOTALL)
_FOR_OPTION_RE = re.compile(r"\s*(?:(limit|offset)\s*:\s*([^\s,]+)|(reversed))\s*,?")
_ASSIGN_RE = re.compile(r"^([\w-]+)\s*=\s*(.+)$", re.DOTALL)
_INCLUDE_NAME_RE = re.compile(r"^(\{\{.*?\}\}|\"[^\"]*\"|'[^']*'|\S+)(.*)$", re.DOTALL)
_INCLUDE_PARAM_RE = re.compile(r"\s*([\w-]+)\s*=\s*(\"[^\"]*\"|'[^']*'|[^\s]+)")


class Parser:
    """Builds the node tree for one template."""

    def __init__(self, source: str, name: str = "<string>",
                 filter_exists: Callable[[str], bool] = lambda name: True):
        self.source = source
        self.name = name
        self.filter_exists = filter_exists
        self.tokens: list[Token] = []
        self.pos = 0
        self.loop_depth = 0
        self.tags = {
            "if": self.parse_if,
            "unless": self.parse_unless,
            "for": self.parse_for,
            "include": self.parse_include,
            "assign": self.parse_assign,
            "capture": self.parse_capture,
            "break": self.parse_break,
            "continue": self.parse_continue,
        }

    def error(self, message: str, token: Optional[Token] = None) -> TemplateSyntaxError:
        line = line_of(self.source, token.offset) if token else None
        return TemplateSyntaxError(message, self.name, line)

    def line(self, token: Token) -> int:
        return line_of(self.source, token.offset)

    def parse(self) -> list[Node]:
        self.tokens = tokenize(self.source, self.name)
        self.pos = 0
        nodes, _, _, _ = self.parse_block(())
        return nodes

    def parse_block(self, stop: tuple[str, ...], opener: Optional[Token] = None
                    ) -> tuple[list[Node], Optional[str], str, Optional[Token]]:
        """Parse nodes until one of the stop tags; returns (nodes, stop_tag, stop_markup, stop_token)."""
        nodes: list[Node] = []
        while self.pos < len(self.tokens):
            token = self.tokens[self.pos]
            self.pos += 1
            if token.kind == TEXT:
                nodes.append(TextNode(token.value))
                continue
            if token.kind == OUTPUT:
                expr = parse_filtered(token.value, self.name, self.line(token), self.filter_exists)
                nodes.append(OutputNode(expr, self.line(token)))
                continue

            tag, _, markup = token.value.replace("\n", " ").partition(" ")
            markup = markup.strip()
            if tag in stop:
                return nodes, tag, markup, token
            handler = self.tags.get(tag)
            if handler is None:
                if tag.startswith("end") or tag in ("else", "elsif"):
                    raise self.error(f"unexpected '{tag}' tag", token)
                raise self.error(f"unknown tag '{tag}'", token)
            nodes.append(handler(markup, token))

        if stop:
            raise self.error(f"'{opener.value.split()[0]}' tag was never closed", opener)
        return nodes, None, "", None

    # --- tags ---

    def _conditional(self, markup: str, token: Token, end: str, negate: bool) -> IfNode:
        if not markup:
            raise self.error(f"'{token.value.split()[0]}' tag requires a condition", token)
        condition = parse_condition(markup, self.name, self.line(token))
        if negate:
            condition = Not(condition)
        branches = []
        stop = ("else", end) if negate else ("elsif", "else", end)
        while True:
            body, tag, next_markup, tag_token = self.parse_block(stop, token)
            branches.append((condition, body))
            if tag == "elsif":
                condition = parse_condition(next_markup, self.name, self.line(tag_token))
                continue
            else_body = []
            if tag == "else":
                else_body, _, _, _ = self.parse_block((end,), token)
            return IfNode(branches, else_body, self.line(token))

    def parse_if(self, markup: str, token: Token) -> Node:
        return self._conditional(markup, token, "endif", negate=False)

    def parse_unless(self, markup: str, token: Token) -> Node:
        return self._conditional(markup, token, "endunless", negate=True)

    def parse_for(self, markup: str, token: Token) -> Node:
        m = _FOR_RE.match(markup)
        if m is None:
            raise self.error(f"invalid for loop {markup!r}; expected 'item in sequence'", token)
        variable, iterable_markup, rest = m.groups()
        line = self.line(token)
        iterable = parse_value(iterable_markup, self.name, line)

        options = {}
        pos = 0
        rest = rest.strip()
        while pos < len(rest):
            opt = _FOR_OPTION_RE.match(rest, pos)
            if opt is None or opt.end() == pos:
                raise self.error(f"invalid for loop option {rest[pos:]!r}", token)
            if opt.group(3):
                options["reversed"] = True
            else:
                options[opt.group(1)] = parse_value(opt.group(2), self.name, line)
            pos = opt.end()

        self.loop_depth += 1
        try:
            body, tag, _, _ = self.parse_block(("else", "endfor"), token)
        finally:
            self.loop_depth -= 1
        else_body = []
        if tag == "else":
            else_body, _, _, _ = self.parse_block(("endfor",), token)
        return ForNode(variable, iterable, body, else_body,
                       limit=options.get("limit"), offset=options.get("offset"),
                       reversed=options.get("reversed", False), line=line)

    def parse_include(self, markup: str, token: Token) -> Node:
        m = _INCLUDE_NAME_RE.match(markup)
        if m is None:
            raise self.error("'include' tag requires a template name", token)
        raw_name, rest = m.groups()
        line = self.line(token)
        if raw_name.startswith("{{"):
            name = parse_filtered(raw_name[2:-2].strip(), self.name, line, self.filter_exists)
        elif raw_name[0] in "\"'":
            name = raw_name[1:-1]
        else:
            name = raw_name

        params = {}
        pos = 0
        rest = rest.strip()
        while pos < len(rest):
            param = _INCLUDE_PARAM_RE.match(rest, pos)
            if param is None:
                raise self.error(f"invalid include parameter {rest[pos:]!r}", token)
            params[param.group(1)] = parse_value(param.group(2), self.name, line)
            pos = param.end()
        return IncludeNode(name, params, line)

    def parse_assign(self, markup: str, token: Token) -> Node:
        m = _ASSIGN_RE.match(markup)
        if m is None:
            raise self.error(f"invalid assign {markup!r}; expected 'name = value'", token)
        line = self.line(token)
        return AssignNode(m.group(1), parse_filtered(m.group(2), self.name, line, self.filter_exists), line)

    def parse_capture(self, markup: str, token: Token) -> Node:
        if not re.fullmatch(r"[\w-]+", markup):
            raise self.error(f"invalid capture name {markup!r}", token)
        body, _, _, _ = self.parse_block(("endcapture",), token)
        return CaptureNode(markup, body, self.line(token))

    def parse_break(self, markup: str, token: Token) -> Node:
        if not self.loop_depth:
            raise self.error("'break' outside of a for loop", token)
        return BreakNode(self.line(token))

    def parse_continue(self, markup: str, token: Token) -> Node:
        if not self.loop_depth:
            raise self.error("'continue' outside of a for loop", token)
        return ContinueNode(self.line(token))
