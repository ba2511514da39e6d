"""Program — the parsed declaration graph that metadata generation walks.

Every analyzed file is parsed with Python's built-in ast module and indexed by
module name. The program answers the two questions the generators need from a
type checker: what does a name refer to, and what constant value does an
expression hold. Source is never imported or executed.
"""

from __future__ import annotations

import ast
import logging
import operator
import sys
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from routemeta.exceptions import GenerateMetadataError

logger = logging.getLogger(__name__)

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_UNARY_OPERATORS = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
    ast.Not: operator.not_,
}


class _NotConstant(Exception):
    """Raised internally when an expression has no static value."""


@dataclass
class SourceFile:
    """A parsed module with its top-level declarations and import bindings."""

    path: str
    module: str
    tree: ast.Module
    declarations: dict[str, ast.stmt] = field(default_factory=dict)
    # local name -> (module, attribute); attribute is None for `import x`
    imports: dict[str, tuple[str, str | None]] = field(default_factory=dict)

    @property
    def is_package(self) -> bool:
        return Path(self.path).stem == "__init__"

    def classes(self) -> list[ast.ClassDef]:
        return [node for node in self.tree.body if isinstance(node, ast.ClassDef)]


@dataclass
class Declaration:
    """A declaration node together with the file that declares it."""

    node: ast.AST
    source: SourceFile | None

    @property
    def name(self) -> str:
        node = self.node
        if isinstance(node, (ast.ClassDef, ast.FunctionDef, ast.AsyncFunctionDef)):
            return node.name
        target = _assigned_name(node)
        return target or ""


class Program:
    """The set of analyzed source files plus lazily loaded dependencies."""

    def __init__(self, sources: Iterable[SourceFile], root: str | Path = "."):
        self.root = Path(root)
        self.sources = list(sources)
        self._modules = {source.module: source for source in self.sources}
        self._external: dict[str, SourceFile | None] = {}

    @classmethod
    def from_paths(cls, paths: Iterable[str | Path], root: str | Path | None = None) -> Program:
        """Parse every file in ``paths``; module names are relative to ``root``."""
        paths = [Path(p) for p in paths]
        if root is None:
            root = Path.cwd()
        sources = []
        seen: set[Path] = set()
        for path in paths:
            resolved = path.resolve()
            if resolved in seen:
                continue
            seen.add(resolved)
            sources.append(parse_source_file(path, _module_name(path, Path(root))))
        logger.debug("Parsed %d source file(s)", len(sources))
        return cls(sources, root)

    @classmethod
    def from_source(cls, code: str, path: str = "module.py", module: str | None = None) -> Program:
        """Build a single-file program from source text."""
        module = module or Path(path).stem
        return cls([parse_source_text(code, path, module)])

    # --- Declarations ---

    def iter_classes(self) -> Iterator[Declaration]:
        """Yield every top-level class of the analyzed files, in file order."""
        for source in self.sources:
            for node in source.classes():
                yield Declaration(node, source)

    def get_module(self, name: str) -> SourceFile | None:
        if not name:
            return None
        if name in self._modules:
            return self._modules[name]
        if name not in self._external:
            self._external[name] = self._load_external(name)
        return self._external[name]

    def lookup(self, name: str, source: SourceFile | None) -> Declaration | None:
        """Resolve a possibly dotted name as seen from ``source``."""
        found = self._lookup(name, source, set())
        if found is None and "." not in name:
            found = self._lookup_global(name)
        return found

    def _lookup(self, name: str, source: SourceFile | None, seen: set) -> Declaration | None:
        if source is None:
            return None
        key = (source.module, name)
        if key in seen:
            return None
        seen.add(key)

        head, _, rest = name.partition(".")
        if not rest and head in source.declarations:
            return Declaration(source.declarations[head], source)
        if head in source.declarations and rest:
            return self._lookup_member(Declaration(source.declarations[head], source), rest)
        if head not in source.imports:
            return None

        module_name, attribute = source.imports[head]
        if attribute is None:
            return self._lookup_in_module(module_name, rest, seen) if rest else None

        # `from pkg import mod` binds a module, `from mod import Name` a member
        submodule = self.get_module(f"{module_name}.{attribute}")
        if submodule is not None:
            return self._lookup_in_module(submodule.module, rest, seen) if rest else None
        target = f"{attribute}.{rest}" if rest else attribute
        return self._lookup_in_module(module_name, target, seen)

    def _lookup_in_module(self, module_name: str, name: str, seen: set) -> Declaration | None:
        head, _, rest = name.partition(".")
        if rest:
            submodule = self.get_module(f"{module_name}.{head}")
            if submodule is not None:
                return self._lookup_in_module(submodule.module, rest, seen)
        module = self.get_module(module_name)
        return self._lookup(name, module, seen)

    def _lookup_member(self, owner: Declaration, name: str) -> Declaration | None:
        if not isinstance(owner.node, ast.ClassDef) or "." in name:
            return None
        for stmt in owner.node.body:
            if isinstance(stmt, ast.ClassDef) and stmt.name == name:
                return Declaration(stmt, owner.source)
            if _assigned_name(stmt) == name:
                return Declaration(stmt, owner.source)
        return None

    def _lookup_global(self, name: str) -> Declaration | None:
        matches = [source for source in self.sources if name in source.declarations]
        if len(matches) != 1:
            return None
        return Declaration(matches[0].declarations[name], matches[0])

    def _load_external(self, name: str) -> SourceFile | None:
        path = _find_module_file(name, [self.root, *map(Path, sys.path)])
        if path is None:
            return None
        try:
            source = parse_source_file(path, name)
        except GenerateMetadataError:
            logger.debug("Skipping unparsable dependency %s (%s)", name, path)
            return None
        logger.debug("Loaded dependency %s from %s", name, path)
        return source

    # --- Constant evaluation ---

    def evaluate(self, node: ast.AST | None, source: SourceFile | None) -> Any:
        """Evaluate a constant-like expression; ``None`` when it has no static value."""
        if node is None:
            return None
        try:
            return self._evaluate(node, source, set())
        except _NotConstant:
            return None

    def _evaluate(self, node: ast.AST, source: SourceFile | None, seen: set) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.List):
            return [self._evaluate(e, source, seen) for e in node.elts]
        if isinstance(node, ast.Tuple):
            return tuple(self._evaluate(e, source, seen) for e in node.elts)
        if isinstance(node, ast.Set):
            return self._apply(set, [self._evaluate(e, source, seen) for e in node.elts])
        if isinstance(node, ast.Dict):
            if any(key is None for key in node.keys):
                raise _NotConstant
            items = [
                (self._evaluate(k, source, seen), self._evaluate(v, source, seen))
                for k, v in zip(node.keys, node.values)
            ]
            return self._apply(dict, items)
        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
            operand = self._evaluate(node.operand, source, seen)
            return self._apply(_UNARY_OPERATORS[type(node.op)], operand)
        if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
            left = self._evaluate(node.left, source, seen)
            right = self._evaluate(node.right, source, seen)
            return self._apply(_BINARY_OPERATORS[type(node.op)], left, right)
        if isinstance(node, ast.JoinedStr):
            return "".join(self._format_part(part, source, seen) for part in node.values)
        if isinstance(node, (ast.Name, ast.Attribute)):
            return self._evaluate_reference(node, source, seen)
        raise _NotConstant

    def _evaluate_reference(self, node: ast.AST, source: SourceFile | None, seen: set) -> Any:
        name = dotted_name(node)
        if name is None or (name, id(source)) in seen:
            raise _NotConstant
        seen = seen | {(name, id(source))}

        declaration = self.lookup(name, source)
        if declaration is None and isinstance(node, ast.Attribute):
            # Enum.MEMBER where the owner is imported under another module path
            owner = self.lookup(dotted_name(node.value) or "", source)
            if owner is not None:
                declaration = self._lookup_member(owner, node.attr)
        if declaration is None:
            raise _NotConstant

        value = getattr(declaration.node, "value", None)
        if value is None or isinstance(declaration.node, ast.ClassDef):
            raise _NotConstant
        return self._evaluate(value, declaration.source, seen)

    def _format_part(self, part: ast.AST, source: SourceFile | None, seen: set) -> str:
        if isinstance(part, ast.Constant):
            return str(part.value)
        if not isinstance(part, ast.FormattedValue):
            raise _NotConstant
        value = self._evaluate(part.value, source, seen)
        if part.conversion == ord("r"):
            value = repr(value)
        elif part.conversion == ord("a"):
            value = ascii(value)
        spec = ""
        if part.format_spec is not None:
            spec = self._evaluate(part.format_spec, source, seen)
        return self._apply(format, value, spec)

    @staticmethod
    def _apply(func, *args):
        try:
            return func(*args)
        except (TypeError, ValueError, ArithmeticError):
            raise _NotConstant from None


def location(node: ast.AST, source: SourceFile | None) -> str:
    """Human-readable ``file:line:col`` for error messages."""
    path = source.path if source is not None else "<unknown>"
    line = getattr(node, "lineno", 0)
    col = getattr(node, "col_offset", 0)
    return f"{path}:{line}:{col + 1}"


def dotted_name(node: ast.AST) -> str | None:
    """``a.b.C`` for Name/Attribute chains, otherwise ``None``."""
    parts = []
    while isinstance(node, ast.Attribute):
        parts.append(node.attr)
        node = node.value
    if not isinstance(node, ast.Name):
        return None
    parts.append(node.id)
    return ".".join(reversed(parts))


def parse_source_file(path: str | Path, module: str) -> SourceFile:
    path = Path(path)
    try:
        code = path.read_text(encoding="utf-8")
    except OSError as e:
        raise GenerateMetadataError(f"Unable to read source file '{path}': {e}") from e
    return parse_source_text(code, str(path), module)


def parse_source_text(code: str, path: str, module: str) -> SourceFile:
    try:
        tree = ast.parse(code, filename=path)
    except SyntaxError as e:
        raise GenerateMetadataError(f"Unable to parse '{path}': {e.msg} (line {e.lineno})") from e

    source = SourceFile(path=path, module=module, tree=tree)
    for stmt in _top_level_statements(tree.body):
        if isinstance(stmt, (ast.Import, ast.ImportFrom)):
            source.imports.update(_import_bindings(stmt, source))
            continue
        name = stmt.name if isinstance(stmt, ast.ClassDef) else _assigned_name(stmt)
        if name:
            source.declarations[name] = stmt
    return source


def _top_level_statements(body: list[ast.stmt]) -> Iterator[ast.stmt]:
    """Module statements, descending into `if TYPE_CHECKING:` and `try:` blocks."""
    for stmt in body:
        if isinstance(stmt, ast.If):
            yield from _top_level_statements(stmt.body)
            yield from _top_level_statements(stmt.orelse)
        elif isinstance(stmt, ast.Try):
            yield from _top_level_statements(stmt.body)
            for handler in stmt.handlers:
                yield from _top_level_statements(handler.body)
        else:
            yield stmt


def _assigned_name(stmt: ast.AST) -> str | None:
    if isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
        return stmt.target.id
    if isinstance(stmt, ast.Assign) and len(stmt.targets) == 1:
        target = stmt.targets[0]
        if isinstance(target, ast.Name):
            return target.id
    type_alias = getattr(ast, "TypeAlias", None)
    if type_alias is not None and isinstance(stmt, type_alias):
        return stmt.name.id
    return None


def _import_bindings(
    node: ast.Import | ast.ImportFrom, source: SourceFile
) -> dict[str, tuple[str, str | None]]:
    bindings: dict[str, tuple[str, str | None]] = {}
    if isinstance(node, ast.Import):
        for alias in node.names:
            if alias.asname:
                bindings[alias.asname] = (alias.name, None)
            else:
                head = alias.name.split(".")[0]
                bindings[head] = (head, None)
        return bindings

    module = node.module or ""
    if node.level:
        package = source.module.split(".")
        if not source.is_package:
            package = package[:-1]
        if node.level > 1:
            package = package[: len(package) - (node.level - 1)]
        module = ".".join([*package, module] if module else package)
    for alias in node.names:
        if alias.name == "*":
            continue
        bindings[alias.asname or alias.name] = (module, alias.name)
    return bindings


def _module_name(path: Path, root: Path) -> str:
    resolved = path.resolve()
    try:
        relative = resolved.relative_to(root.resolve())
    except ValueError:
        relative = Path(path.name)
    parts = list(relative.with_suffix("").parts)
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts) or path.stem


def _find_module_file(name: str, search_path: Iterable[Path]) -> Path | None:
    relative = Path(*name.split("."))
    for base in search_path:
        for candidate in (base / relative.with_suffix(".py"), base / relative / "__init__.py"):
            if candidate.is_file():
                return candidate
    return None
