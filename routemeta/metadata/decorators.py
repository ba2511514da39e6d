"""Annotation query — read-only lookups over the decorators of a declaration."""

from __future__ import annotations

import ast
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from routemeta.ir.models import Security
from routemeta.ir.program import Program, SourceFile


@dataclass
class Decorator:
    """One decorator application, e.g. ``@Response[Error, Headers]("500", "Oops")``."""

    name: str
    node: ast.expr
    args: list[ast.expr] = field(default_factory=list)
    keywords: dict[str, ast.expr] = field(default_factory=dict)
    type_args: list[ast.expr] = field(default_factory=list)


def get_decorator_name(expression: ast.expr) -> str | None:
    """The identifier a decorator expression is known by (last dotted part)."""
    if isinstance(expression, ast.Call):
        expression = expression.func
    if isinstance(expression, ast.Subscript):
        expression = expression.value
    if isinstance(expression, ast.Attribute):
        return expression.attr
    if isinstance(expression, ast.Name):
        return expression.id
    return None


def get_decorators(node: ast.AST, predicate: Callable[[str], bool]) -> list[Decorator]:
    """Decorators of ``node`` whose name satisfies ``predicate``, in source order."""
    decorators = []
    for expression in getattr(node, "decorator_list", []):
        name = get_decorator_name(expression)
        if name is not None and predicate(name):
            decorators.append(_to_decorator(name, expression))
    return decorators


def get_decorators_named(node: ast.AST, name: str) -> list[Decorator]:
    return get_decorators(node, lambda identifier: identifier == name)


def get_decorator_values(
    decorator: Decorator,
    program: Program,
    source: SourceFile | None,
    names: Sequence[str] = (),
) -> list[Any]:
    """Evaluate the decorator's arguments.

    Positional arguments come first; a keyword argument fills the slot of the
    matching entry in ``names``. Arguments without a static value are ``None``.
    """
    values = [program.evaluate(arg, source) for arg in decorator.args]
    for index, name in enumerate(names):
        if name not in decorator.keywords:
            continue
        while len(values) <= index:
            values.append(None)
        values[index] = program.evaluate(decorator.keywords[name], source)
    return values


def has_argument(decorator: Decorator, index: int, name: str) -> bool:
    """Whether the argument at ``index`` (or keyword ``name``) was written at all."""
    return len(decorator.args) > index or name in decorator.keywords


def get_securities(decorator: Decorator, program: Program, source: SourceFile | None) -> Security:
    """``Security("name", ["scope"])`` or ``Security({"name": ["scope"], ...})``."""
    first, scopes = (get_decorator_values(decorator, program, source, ("name", "scopes")) + [None, None])[:2]
    if isinstance(first, dict):
        return {str(name): _scopes(value) for name, value in first.items()}
    if first is None:
        return {}
    return {str(first): _scopes(scopes)}


def _scopes(value: Any) -> list[str]:
    if isinstance(value, (list, tuple, set)):
        return [str(scope) for scope in value]
    return []


def _to_decorator(name: str, expression: ast.expr) -> Decorator:
    decorator = Decorator(name=name, node=expression)
    target = expression
    if isinstance(target, ast.Call):
        decorator.args = list(target.args)
        decorator.keywords = {kw.arg: kw.value for kw in target.keywords if kw.arg is not None}
        target = target.func
    if isinstance(target, ast.Subscript):
        decorator.type_args = _subscript_items(target)
    return decorator


def _subscript_items(node: ast.Subscript) -> list[ast.expr]:
    items = node.slice
    if isinstance(items, ast.Tuple):
        return list(items.elts)
    return [items]
