"""Type resolver — turns type hints into Type IR.

Named declarations (classes, enums, type aliases) are registered once per
reference name in the run's reference-type map and reused on every later
reference. A placeholder is registered before a declaration's body is
resolved, so self- and mutually-referential types terminate.
"""

from __future__ import annotations

import ast
import re
from typing import TYPE_CHECKING, Any, Optional

from routemeta.exceptions import GenerateMetadataError
from routemeta.ir.models import (
    ArrayType,
    EnumType,
    IntersectionType,
    NestedObjectLiteralType,
    PrimitiveType,
    Property,
    RefAliasType,
    RefEnumType,
    RefObjectType,
    TupleType,
    Type,
    UnionType,
)
from routemeta.ir.program import Declaration, SourceFile, dotted_name, location

if TYPE_CHECKING:
    from routemeta.metadata.metadata_generator import MetadataGenerator

# type variable name -> (bound type expression, its source, its own context)
TypeContext = dict[str, tuple[ast.expr, Optional[SourceFile], "TypeContext"]]

PRIMITIVES = {
    "str": "string",
    "AnyStr": "string",
    "UUID": "string",
    "int": "integer",
    "float": "double",
    "Decimal": "double",
    "bool": "boolean",
    "bytes": "buffer",
    "bytearray": "buffer",
    "datetime": "datetime",
    "date": "date",
    "Any": "any",
    "object": "any",
}

ARRAYS = {
    "list",
    "List",
    "Sequence",
    "MutableSequence",
    "Iterable",
    "Collection",
    "set",
    "Set",
    "frozenset",
    "FrozenSet",
    "AbstractSet",
    "MutableSet",
}
MAPPINGS = {"dict", "Dict", "Mapping", "MutableMapping", "DefaultDict", "defaultdict", "OrderedDict"}
TUPLES = {"tuple", "Tuple"}
# Wrappers whose (last) argument is the real type
UNWRAPPED = {"Awaitable", "Coroutine", "Required", "NotRequired", "ReadOnly", "Final"}
ENUM_BASES = {"Enum", "IntEnum", "StrEnum", "Flag", "IntFlag"}
FLAG_BASES = {"Flag", "IntFlag"}
# Bases that carry no fields of their own
STRUCTURAL_BASES = {"object", "Generic", "Protocol", "TypedDict", "BaseModel", "NamedTuple", "ABC"}
# Modules whose names keep their typing meaning when imported
TYPING_MODULES = {
    "typing",
    "typing_extensions",
    "collections",
    "collections.abc",
    "builtins",
    "types",
    "datetime",
    "decimal",
    "uuid",
    "routemeta",
    "routemeta.runtime",
    "routemeta.runtime.parameters",
}

_NULL = EnumType([None])


class TypeResolver:
    """Resolves one type expression within the current metadata run."""

    def __init__(
        self,
        node: ast.expr,
        current: MetadataGenerator,
        source: SourceFile | None,
        context: TypeContext | None = None,
    ):
        self.node = node
        self.current = current
        self.source = source
        self.context = context or {}
        self._transparent_aliases: list[tuple[str, str]] = []

    def resolve(self) -> Type:
        return self._resolve(self.node, self.source, self.context)

    def _resolve(self, node: ast.expr, source: SourceFile | None, context: TypeContext) -> Type:
        if isinstance(node, ast.Constant):
            if node.value is None:
                return PrimitiveType("void")
            if isinstance(node.value, str):
                return self._resolve(self._parse_forward_reference(node, source), source, context)
            raise self._error(f"Unsupported type '{ast.unparse(node)}'", node, source)
        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
            return self._union([node.left, node.right], source, context)
        if isinstance(node, ast.Subscript):
            return self._resolve_subscript(node, source, context)
        if isinstance(node, (ast.Name, ast.Attribute)):
            return self._resolve_name(node, [], source, context)
        raise self._error(f"Unsupported type '{ast.unparse(node)}'", node, source)

    # --- Names and generics ---

    def _resolve_name(
        self, node: ast.expr, args: list[ast.expr], source: SourceFile | None, context: TypeContext
    ) -> Type:
        name = dotted_name(node)
        if name is None:
            raise self._error(f"Unsupported type '{ast.unparse(node)}'", node, source)
        if name in context and not args:
            bound, bound_source, bound_context = context[name]
            return self._resolve(bound, bound_source, bound_context)

        identifier = _typing_identifier(name, source)
        if identifier is not None:
            builtin = self._resolve_builtin(identifier, node, args, source, context)
            if builtin is not None:
                return builtin

        declaration = self.current.program.lookup(name, source)
        if declaration is None:
            raise self._error(f"Unknown type '{ast.unparse(node)}'", node, source)
        return self._resolve_declaration(declaration, node, args, source, context)

    def _resolve_builtin(
        self,
        identifier: str,
        node: ast.expr,
        args: list[ast.expr],
        source: SourceFile | None,
        context: TypeContext,
    ) -> Type | None:
        if identifier in PRIMITIVES and not args:
            return PrimitiveType(PRIMITIVES[identifier])
        if identifier == "NoneType":
            return PrimitiveType("void")
        if identifier in ARRAYS:
            element = self._resolve(args[0], source, context) if args else PrimitiveType("any")
            return ArrayType(element)
        if identifier in MAPPINGS:
            if not args:
                return PrimitiveType("object")
            if len(args) != 2:
                raise self._error(f"Unsupported mapping type '{ast.unparse(node)}'", node, source)
            return NestedObjectLiteralType(
                properties=[], additional_properties=self._resolve(args[1], source, context)
            )
        if identifier in TUPLES:
            if not args:
                return ArrayType(PrimitiveType("any"))
            if len(args) == 2 and isinstance(args[1], ast.Constant) and args[1].value is Ellipsis:
                return ArrayType(self._resolve(args[0], source, context))
            return TupleType([self._resolve(arg, source, context) for arg in args])
        if identifier == "Union":
            return self._union(args, source, context)
        if identifier == "Optional":
            return self._union([*args, ast.Constant(None)], source, context)
        if identifier == "Literal":
            return EnumType(self._literal_values(args, source))
        if identifier == "Intersection":
            return IntersectionType([self._resolve(arg, source, context) for arg in args])
        if identifier == "Annotated" and args:
            return self._resolve(args[0], source, context)
        if identifier in UNWRAPPED and args:
            return self._resolve(args[-1], source, context)
        return None

    def _resolve_subscript(
        self, node: ast.Subscript, source: SourceFile | None, context: TypeContext
    ) -> Type:
        items = node.slice
        args = list(items.elts) if isinstance(items, ast.Tuple) else [items]
        if not isinstance(node.value, (ast.Name, ast.Attribute)):
            raise self._error(f"Unsupported type '{ast.unparse(node)}'", node, source)
        return self._resolve_name(node.value, args, source, context)

    def _resolve_declaration(
        self,
        declaration: Declaration,
        node: ast.expr,
        args: list[ast.expr],
        source: SourceFile | None,
        context: TypeContext,
    ) -> Type:
        decl_node = declaration.node
        if isinstance(decl_node, ast.ClassDef):
            if self._is_enum(declaration):
                return self._enum_reference(declaration)
            return self._object_reference(declaration, node, args, source, context)

        value = getattr(decl_node, "value", None)
        if _is_type_alias(decl_node):
            return self._alias_reference(declaration, value, node, args, source, context)
        if isinstance(value, ast.Call):
            callee = (dotted_name(value.func) or "").rsplit(".", 1)[-1]
            if callee == "NewType" and len(value.args) == 2:
                return self._alias_reference(declaration, value.args[1], node, args, source, context)
            if callee == "TypeVar":
                raise self._error(f"Unbound type variable '{declaration.name}'", node, source)
        if isinstance(decl_node, ast.Assign) and value is not None:
            return self._transparent_alias(declaration, value, node, source)
        raise self._error(f"'{ast.unparse(node)}' is not a type", node, source)

    def _transparent_alias(
        self, declaration: Declaration, value: ast.expr, node: ast.expr, source: SourceFile | None
    ) -> Type:
        # `Users = list[User]` resolves in place; recursion needs an explicit TypeAlias
        key = (declaration.source.module if declaration.source else "", declaration.name)
        if key in self._transparent_aliases:
            raise self._error(
                f"Recursive type '{declaration.name}' must be declared as a TypeAlias", node, source
            )
        self._transparent_aliases.append(key)
        try:
            return self._resolve(value, declaration.source, {})
        finally:
            self._transparent_aliases.pop()

    # --- Reference types ---

    def _object_reference(
        self,
        declaration: Declaration,
        node: ast.expr,
        args: list[ast.expr],
        source: SourceFile | None,
        context: TypeContext,
    ) -> RefObjectType:
        class_node = declaration.node
        ref_name = self._reference_name(class_node.name, args, source, context)
        existing = self.current.get_reference_type(ref_name)
        if existing is not None:
            return existing

        reference = RefObjectType(ref_name, description=ast.get_docstring(class_node) or "")
        self.current.add_reference_type(reference)

        class_context = self._bind_type_parameters(declaration, node, args, source, context)
        reference.properties = self._class_properties(declaration, class_context, set())
        reference.additional_properties = self._declared_additional_properties(
            declaration, class_context
        )
        return reference

    def _enum_reference(self, declaration: Declaration) -> RefEnumType:
        class_node = declaration.node
        existing = self.current.get_reference_type(class_node.name)
        if existing is not None:
            return existing

        reference = RefEnumType(class_node.name, description=ast.get_docstring(class_node) or "")
        string_valued = any(_identifier(base) == "StrEnum" for base in class_node.bases)
        is_flag = self._inherits(declaration, FLAG_BASES, set())
        counter = 0
        for stmt in class_node.body:
            member = _enum_member(stmt)
            if member is None:
                continue
            name, value_node = member
            if _is_auto(value_node):
                # flags take the next power of two above the highest bit so far
                counter = 1 << counter.bit_length() if is_flag else counter + 1
                value = name.lower() if string_valued else counter
            else:
                value = self.current.program.evaluate(value_node, declaration.source)
                if value is None:
                    raise self._error(
                        f"Enum member '{class_node.name}.{name}' must have a constant value",
                        stmt,
                        declaration.source,
                    )
                if isinstance(value, int) and not isinstance(value, bool):
                    counter = value
            reference.enums.append(value)
            reference.enum_varnames.append(name)

        self.current.add_reference_type(reference)
        return reference

    def _alias_reference(
        self,
        declaration: Declaration,
        value: ast.expr | None,
        node: ast.expr,
        args: list[ast.expr],
        source: SourceFile | None,
        context: TypeContext,
    ) -> RefAliasType:
        if value is None:
            raise self._error(f"Type alias '{declaration.name}' has no value", node, source)
        ref_name = self._reference_name(declaration.name, args, source, context)
        existing = self.current.get_reference_type(ref_name)
        if existing is not None:
            return existing

        reference = RefAliasType(ref_name)
        self.current.add_reference_type(reference)
        alias_context = self._bind_type_parameters(declaration, node, args, source, context)
        reference.type = self._resolve(value, declaration.source, alias_context)
        return reference

    def _bind_type_parameters(
        self,
        declaration: Declaration,
        node: ast.expr,
        args: list[ast.expr],
        source: SourceFile | None,
        context: TypeContext,
    ) -> TypeContext:
        parameters = _type_parameters(declaration.node)
        if len(args) > len(parameters):
            raise self._error(
                f"Too many type arguments for '{declaration.name}' "
                f"(expected {len(parameters)}, got {len(args)})",
                node,
                source,
            )
        bound: TypeContext = {}
        for index, parameter in enumerate(parameters):
            if index < len(args):
                bound[parameter] = (args[index], source, context)
            else:
                bound[parameter] = (ast.Name(id="Any", ctx=ast.Load()), source, {})
        return bound

    def _reference_name(
        self, name: str, args: list[ast.expr], source: SourceFile | None, context: TypeContext
    ) -> str:
        if not args:
            return name
        parts = [self._type_name(arg, source, context) for arg in args]
        return f"{name}_{'_'.join(parts)}_"

    def _type_name(self, node: ast.expr, source: SourceFile | None, context: TypeContext) -> str:
        if isinstance(node, ast.Name) and node.id in context:
            bound, bound_source, bound_context = context[node.id]
            return self._type_name(bound, bound_source, bound_context)
        if isinstance(node, (ast.Name, ast.Attribute)):
            return (dotted_name(node) or "").rsplit(".", 1)[-1]
        if isinstance(node, ast.Subscript):
            items = node.slice
            args = list(items.elts) if isinstance(items, ast.Tuple) else [items]
            return self._reference_name(self._type_name(node.value, source, context), args, source, context)
        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
            left = self._type_name(node.left, source, context)
            right = self._type_name(node.right, source, context)
            return f"{left}_or_{right}"
        return re.sub(r"\W+", "_", ast.unparse(node)).strip("_") or "Anonymous"

    # --- Classes ---

    def _class_properties(
        self, declaration: Declaration, context: TypeContext, visited: set[int]
    ) -> list[Property]:
        class_node = declaration.node
        if id(class_node) in visited:
            return []
        visited.add(id(class_node))

        properties: dict[str, Property] = {}
        for base in class_node.bases:
            for prop in self._base_properties(base, declaration.source, context, visited):
                properties[prop.name] = prop

        total = _class_keyword(class_node, "total")
        is_typed_dict = self._is_typed_dict(declaration)
        total_by_default = not (isinstance(total, ast.Constant) and total.value is False)
        body = class_node.body
        for index, stmt in enumerate(body):
            if not isinstance(stmt, ast.AnnAssign) or not isinstance(stmt.target, ast.Name):
                continue
            name = stmt.target.id
            if name.startswith("_") or _identifier(_outer(stmt.annotation)) == "ClassVar":
                continue
            prop_type = self._resolve(stmt.annotation, declaration.source, context)
            default, has_default = self._field_default(stmt.value, declaration.source)
            if is_typed_dict:
                required = _typed_dict_required(stmt.annotation, total_by_default)
            else:
                required = not has_default and not is_nullable(prop_type)
            properties[name] = Property(
                name=name,
                type=prop_type,
                required=required,
                default=default,
                description=_attribute_docstring(body, index),
            )
        return list(properties.values())

    def _base_properties(
        self, base: ast.expr, source: SourceFile | None, context: TypeContext, visited: set[int]
    ) -> list[Property]:
        target, args = base, []
        if isinstance(base, ast.Subscript):
            target = base.value
            items = base.slice
            args = list(items.elts) if isinstance(items, ast.Tuple) else [items]
        if _identifier(target) in STRUCTURAL_BASES | ENUM_BASES:
            return []
        name = dotted_name(target)
        declaration = self.current.program.lookup(name, source) if name else None
        if declaration is None or not isinstance(declaration.node, ast.ClassDef):
            return []
        base_context = self._bind_type_parameters(declaration, base, args, source, context)
        return self._class_properties(declaration, base_context, visited)

    def _declared_additional_properties(
        self, declaration: Declaration, context: TypeContext
    ) -> Type | bool | None:
        class_node = declaration.node
        extra_items = _class_keyword(class_node, "extra_items")
        if extra_items is not None:
            return self._resolve(extra_items, declaration.source, context)
        closed = _class_keyword(class_node, "closed")
        if isinstance(closed, ast.Constant) and closed.value is True:
            return False

        # pydantic: model_config = ConfigDict(extra="allow" | "forbid")
        for stmt in class_node.body:
            if getattr(stmt, "value", None) is None:
                continue
            target = stmt.target if isinstance(stmt, ast.AnnAssign) else None
            if isinstance(stmt, ast.Assign) and len(stmt.targets) == 1:
                target = stmt.targets[0]
            if not isinstance(target, ast.Name) or target.id != "model_config":
                continue
            config = self.current.program.evaluate(_config_extra(stmt.value), declaration.source)
            if config == "allow":
                return PrimitiveType("any")
            if config == "forbid":
                return False
        return None

    def _field_default(self, value: ast.expr | None, source: SourceFile | None) -> tuple[Any, bool]:
        if value is None:
            return None, False
        if isinstance(value, ast.Call) and _identifier(value.func) in {"Field", "field"}:
            keywords = {kw.arg: kw.value for kw in value.keywords if kw.arg}
            if "default" in keywords:
                return self.current.program.evaluate(keywords["default"], source), True
            if "default_factory" in keywords:
                return None, True
            if value.args and not (
                isinstance(value.args[0], ast.Constant) and value.args[0].value is Ellipsis
            ):
                return self.current.program.evaluate(value.args[0], source), True
            return None, False
        return self.current.program.evaluate(value, source), True

    def _is_enum(self, declaration: Declaration) -> bool:
        return self._inherits(declaration, ENUM_BASES, set())

    def _is_typed_dict(self, declaration: Declaration) -> bool:
        return self._inherits(declaration, {"TypedDict"}, set())

    def _inherits(self, declaration: Declaration, names: set[str], visited: set[int]) -> bool:
        class_node = declaration.node
        if id(class_node) in visited:
            return False
        visited.add(id(class_node))
        for base in class_node.bases:
            target = base.value if isinstance(base, ast.Subscript) else base
            if _identifier(target) in names:
                return True
            name = dotted_name(target)
            parent = self.current.program.lookup(name, declaration.source) if name else None
            if parent is not None and isinstance(parent.node, ast.ClassDef):
                if self._inherits(parent, names, visited):
                    return True
        return False

    # --- Unions and literals ---

    def _union(self, members: list[ast.expr], source: SourceFile | None, context: TypeContext) -> Type:
        types: list[Type] = []
        for member in members:
            resolved = self._resolve(member, source, context)
            if isinstance(resolved, PrimitiveType) and resolved.data_type == "void":
                resolved = _NULL
            candidates = resolved.types if isinstance(resolved, UnionType) else [resolved]
            for candidate in candidates:
                if candidate not in types:
                    types.append(candidate)
        if len(types) == 1:
            return types[0]
        return UnionType(types)

    def _literal_values(self, args: list[ast.expr], source: SourceFile | None) -> list[Any]:
        values: list[Any] = []
        for arg in args:
            if isinstance(arg, ast.Subscript) and _identifier(arg.value) == "Literal":
                items = arg.slice
                nested = list(items.elts) if isinstance(items, ast.Tuple) else [items]
                values.extend(self._literal_values(nested, source))
                continue
            if isinstance(arg, ast.Constant) and arg.value is None:
                values.append(None)
                continue
            value = self.current.program.evaluate(arg, source)
            if value is None:
                raise self._error(f"Unsupported literal '{ast.unparse(arg)}'", arg, source)
            values.append(value)
        return values

    def _parse_forward_reference(self, node: ast.Constant, source: SourceFile | None) -> ast.expr:
        try:
            parsed = ast.parse(node.value.strip(), mode="eval").body
        except SyntaxError as e:
            raise self._error(f"Invalid forward reference '{node.value}'", node, source) from e
        return ast.copy_location(parsed, node)

    def _error(self, message: str, node: ast.AST, source: SourceFile | None) -> GenerateMetadataError:
        return GenerateMetadataError(f"{message} at {location(node, source)}")


def is_nullable(type_: Type) -> bool:
    """True for ``None`` and unions or literals that admit it."""
    if isinstance(type_, EnumType):
        return None in type_.enums
    if isinstance(type_, UnionType):
        return any(is_nullable(member) for member in type_.types)
    return isinstance(type_, PrimitiveType) and type_.data_type == "void"


def _typing_identifier(name: str, source: SourceFile | None) -> str | None:
    """The typing name ``name`` stands for, or None when it names a user declaration."""
    if source is None:
        return name.rsplit(".", 1)[-1]
    head, _, rest = name.partition(".")
    if head in source.declarations:
        return None
    if head in source.imports:
        module, attribute = source.imports[head]
        qualified = ".".join(part for part in (module, attribute, rest) if part)
    elif rest:
        qualified = name
    else:
        return name
    owner, _, identifier = qualified.rpartition(".")
    return identifier if owner in TYPING_MODULES else None


def _identifier(node: ast.expr) -> str | None:
    name = dotted_name(node)
    return name.rsplit(".", 1)[-1] if name else None


def _outer(annotation: ast.expr) -> ast.expr:
    return annotation.value if isinstance(annotation, ast.Subscript) else annotation


def _is_type_alias(node: ast.AST) -> bool:
    type_alias = getattr(ast, "TypeAlias", None)
    if type_alias is not None and isinstance(node, type_alias):
        return True
    return isinstance(node, ast.AnnAssign) and _identifier(node.annotation) == "TypeAlias"


def _type_parameters(node: ast.AST) -> list[str]:
    """Type variables of ``class C[T]``, ``type A[T] = ...`` or ``class C(Generic[T])``."""
    pep695 = [getattr(param, "name", "") for param in getattr(node, "type_params", None) or []]
    if pep695:
        return pep695
    if not isinstance(node, ast.ClassDef):
        return []
    for base in node.bases:
        if isinstance(base, ast.Subscript) and _identifier(base.value) in {"Generic", "Protocol"}:
            items = base.slice
            elts = items.elts if isinstance(items, ast.Tuple) else [items]
            return [elt.id for elt in elts if isinstance(elt, ast.Name)]
    return []


def _class_keyword(node: ast.ClassDef, name: str) -> ast.expr | None:
    for keyword in node.keywords:
        if keyword.arg == name:
            return keyword.value
    return None


def _config_extra(value: ast.expr) -> ast.expr | None:
    if isinstance(value, ast.Call):
        for keyword in value.keywords:
            if keyword.arg == "extra":
                return keyword.value
    if isinstance(value, ast.Dict):
        for key, item in zip(value.keys, value.values):
            if isinstance(key, ast.Constant) and key.value == "extra":
                return item
    return None


def _typed_dict_required(annotation: ast.expr, total: bool) -> bool:
    wrapper = _identifier(_outer(annotation)) if isinstance(annotation, ast.Subscript) else None
    if wrapper == "Required":
        return True
    if wrapper == "NotRequired":
        return False
    return total


def _attribute_docstring(body: list[ast.stmt], index: int) -> str:
    if index + 1 >= len(body):
        return ""
    following = body[index + 1]
    if (
        isinstance(following, ast.Expr)
        and isinstance(following.value, ast.Constant)
        and isinstance(following.value.value, str)
    ):
        return " ".join(following.value.value.split())
    return ""


def _enum_member(stmt: ast.stmt) -> tuple[str, ast.expr] | None:
    if isinstance(stmt, ast.Assign) and len(stmt.targets) == 1:
        target, value = stmt.targets[0], stmt.value
    elif isinstance(stmt, ast.AnnAssign) and stmt.value is not None:
        target, value = stmt.target, stmt.value
    else:
        return None
    if not isinstance(target, ast.Name) or target.id.startswith("_"):
        return None
    return target.id, value


def _is_auto(node: ast.expr) -> bool:
    return isinstance(node, ast.Call) and _identifier(node.func) == "auto"
