"""Template tree nodes; rendering walks the tree appending strings to an output list"""

from dataclasses import dataclass
from typing import Any, Optional

from mdsite.core.template.context import MISSING, Context, is_truthy, to_output
from mdsite.core.template.expressions import Expression, Filtered
from mdsite.errors import UnresolvedReference


class _LoopSignal(Exception):
    pass


class _Break(_LoopSignal):
    pass


class _Continue(_LoopSignal):
    pass


class Node:
    line: Optional[int] = None

    def render(self, context: Context, out: list[str]) -> None:
        raise NotImplementedError


def render_nodes(nodes: list[Node], context: Context, out: list[str]) -> None:
    for node in nodes:
        context.line = node.line
        node.render(context, out)


@dataclass
class TextNode(Node):
    text: str

    def render(self, context, out):
        out.append(self.text)


@dataclass
class OutputNode(Node):
    expr: Filtered
    line: Optional[int] = None

    def render(self, context, out):
        out.append(to_output(self.expr.evaluate(context, strict=True)))


@dataclass
class IfNode(Node):
    branches:  list      # of (condition, body)
    else_body: list
    line: Optional[int] = None

    def render(self, context, out):
        for condition, body in self.branches:
            if is_truthy(condition.evaluate(context)):
                render_nodes(body, context, out)
                return
        render_nodes(self.else_body, context, out)


def _as_sequence(value: Any) -> list:
    if value is None or value is MISSING or value is False:
        return []
    if hasattr(value, "to_liquid"):
        value = value.to_liquid()
    if isinstance(value, dict) or hasattr(value, "items"):
        return [[k, v] for k, v in value.items()]
    if isinstance(value, str):
        return [value] if value else []
    try:
        return list(value)
    except TypeError:
        return [value]


@dataclass
class ForNode(Node):
    variable:  str
    iterable:  Expression
    body:      list
    else_body: list
    limit:     Optional[Expression] = None
    offset:    Optional[Expression] = None
    reversed:  bool = False
    line: Optional[int] = None

    def render(self, context, out):
        value = self.iterable.evaluate(context)
        if value is MISSING and context.strict:
            raise UnresolvedReference(f"'{self.iterable.dotted}' is not defined",
                                      context.template_name, self.line)
        items = _as_sequence(value)
        start = int(self.offset.evaluate(context) or 0) if self.offset else 0
        if self.limit is not None:
            items = items[start:start + int(self.limit.evaluate(context) or 0)]
        else:
            items = items[start:]
        if self.reversed:
            items.reverse()

        if not items:
            render_nodes(self.else_body, context, out)
            return

        length = len(items)
        for index, item in enumerate(items):
            forloop = {
                "index": index + 1, "index0": index,
                "rindex": length - index, "rindex0": length - index - 1,
                "first": index == 0, "last": index == length - 1,
                "length": length,
            }
            with context.scope({self.variable: item, "forloop": forloop}):
                try:
                    render_nodes(self.body, context, out)
                except _Continue:
                    continue
                except _Break:
                    break


@dataclass
class BreakNode(Node):
    line: Optional[int] = None

    def render(self, context, out):
        raise _Break()


@dataclass
class ContinueNode(Node):
    line: Optional[int] = None

    def render(self, context, out):
        raise _Continue()


@dataclass
class AssignNode(Node):
    name: str
    expr: Filtered
    line: Optional[int] = None

    def render(self, context, out):
        context.assign(self.name, self.expr.evaluate(context))


@dataclass
class CaptureNode(Node):
    name: str
    body: list
    line: Optional[int] = None

    def render(self, context, out):
        captured: list[str] = []
        render_nodes(self.body, context, captured)
        context.assign(self.name, "".join(captured))


@dataclass
class IncludeNode(Node):
    """Render another template from the includes directory inside the current context."""
    name:   Any          # str, or Filtered for {% include {{ expr }} %}
    params: dict         # name -> Expression
    line: Optional[int] = None

    def render(self, context, out):
        name = self.name
        if isinstance(name, Filtered):
            name = to_output(name.evaluate(context, strict=True))
        template = context.environment.get_include(name, context.template_name, self.line)
        params = {}
        for key, expr in self.params.items():
            value = expr.evaluate(context)
            params[key] = None if value is MISSING else value
        with context.including(name):
            with context.scope({"include": params, **params}):
                template.render_into(context, out)
