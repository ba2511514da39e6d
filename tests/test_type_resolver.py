"""Tests for type hint resolution and the reference-type registry."""

import ast

import pytest

from routemeta.exceptions import GenerateMetadataError
from routemeta.ir.models import (
    ArrayType,
    EnumType,
    IntersectionType,
    NestedObjectLiteralType,
    PrimitiveType,
    RefAliasType,
    RefEnumType,
    RefObjectType,
    TupleType,
    UnionType,
)
from routemeta.ir.program import Program, parse_source_text
from routemeta.metadata.metadata_generator import MetadataGenerator
from routemeta.metadata.type_resolver import TypeResolver, is_nullable

MODELS = '''
from dataclasses import dataclass, field
from enum import Enum, IntEnum, auto
from typing import Generic, NewType, Required, TypedDict, TypeAlias, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")

class Color(Enum):
    """Primary colors."""
    RED = "red"
    GREEN = "green"

class Level(IntEnum):
    LOW = auto()
    HIGH = auto()

@dataclass
class User:
    """A registered user."""
    id: int
    name: str
    email: str | None = None
    """Contact address."""
    tags: list[str] = field(default_factory=list)

class Admin(User):
    level: Level

class Filters(TypedDict, total=False):
    name: str
    limit: Required[int]

class Labels(TypedDict, extra_items=str):
    title: str

class Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")
    name: str

class Page(Generic[T]):
    items: list[T]
    total: int

@dataclass
class Node:
    value: int
    children: list["Node"]
    parent: "Node | None" = None

UserId: TypeAlias = int
Email = NewType("Email", str)
Names = list[str]
'''


def _resolve(annotation: str, code: str = MODELS):
    program = Program.from_source(code, path="models.py")
    current = MetadataGenerator(program=program)
    node = ast.parse(annotation, mode="eval").body
    return TypeResolver(node, current, program.sources[0]).resolve(), current


# --- Builtins ---


def test_primitives():
    assert _resolve("str")[0] == PrimitiveType("string")
    assert _resolve("int")[0] == PrimitiveType("integer")
    assert _resolve("float")[0] == PrimitiveType("double")
    assert _resolve("bool")[0] == PrimitiveType("boolean")
    assert _resolve("bytes")[0] == PrimitiveType("buffer")
    assert _resolve("datetime.datetime")[0] == PrimitiveType("datetime")
    assert _resolve("Any")[0] == PrimitiveType("any")
    assert _resolve("None")[0] == PrimitiveType("void")


def test_unions_flatten_and_null_becomes_literal():
    resolved, _ = _resolve("int | str | None")
    assert resolved == UnionType([PrimitiveType("integer"), PrimitiveType("string"), EnumType([None])])
    assert is_nullable(resolved)

    assert _resolve("Optional[str]")[0] == UnionType([PrimitiveType("string"), EnumType([None])])
    assert _resolve("Union[int, int]")[0] == PrimitiveType("integer")
    assert not is_nullable(PrimitiveType("string"))


def test_literals():
    assert _resolve("Literal['asc', 'desc']")[0] == EnumType(["asc", "desc"])
    assert _resolve("Literal[1, None]")[0] == EnumType([1, None])


def test_containers():
    assert _resolve("list[int]")[0] == ArrayType(PrimitiveType("integer"))
    assert _resolve("Sequence[str]")[0] == ArrayType(PrimitiveType("string"))
    assert _resolve("tuple[int, ...]")[0] == ArrayType(PrimitiveType("integer"))
    assert _resolve("tuple[int, str]")[0] == TupleType([PrimitiveType("integer"), PrimitiveType("string")])
    assert _resolve("dict[str, int]")[0] == NestedObjectLiteralType(
        properties=[], additional_properties=PrimitiveType("integer")
    )
    assert _resolve("Annotated[int, 'meta']")[0] == PrimitiveType("integer")
    assert _resolve("Awaitable[str]")[0] == PrimitiveType("string")


def test_intersection():
    resolved, _ = _resolve("Intersection[User, Filters]")
    assert isinstance(resolved, IntersectionType)
    assert [t.ref_name for t in resolved.types] == ["User", "Filters"]


def test_forward_reference_string():
    resolved, _ = _resolve("'list[User]'")
    assert isinstance(resolved, ArrayType)
    assert resolved.element_type.ref_name == "User"


# --- Reference types ---


def test_enum_reference():
    resolved, current = _resolve("Color")
    assert isinstance(resolved, RefEnumType)
    assert resolved.enums == ["red", "green"]
    assert resolved.enum_varnames == ["RED", "GREEN"]
    assert resolved.description == "Primary colors."
    assert current.get_reference_type("Color") is resolved


def test_enum_auto_values():
    resolved, _ = _resolve("Level")
    assert resolved.enums == [1, 2]


def test_dataclass_reference():
    resolved, current = _resolve("User")
    assert isinstance(resolved, RefObjectType)
    assert resolved.description == "A registered user."
    props = {p.name: p for p in resolved.properties}
    assert list(props) == ["id", "name", "email", "tags"]
    assert props["id"].required and props["name"].required
    assert not props["email"].required
    assert props["email"].description == "Contact address."
    assert not props["tags"].required
    assert props["tags"].type == ArrayType(PrimitiveType("string"))
    assert resolved.additional_properties is None
    assert list(current.reference_type_map) == ["User"]


def test_inherited_fields_come_first():
    resolved, current = _resolve("Admin")
    assert [p.name for p in resolved.properties] == ["id", "name", "email", "tags", "level"]
    assert resolved.properties[-1].type.ref_name == "Level"
    assert set(current.reference_type_map) == {"Admin", "Level"}


def test_typed_dict_totality():
    resolved, _ = _resolve("Filters")
    required = {p.name: p.required for p in resolved.properties}
    assert required == {"name": False, "limit": True}


def test_declared_additional_properties():
    labels, _ = _resolve("Labels")
    assert labels.additional_properties == PrimitiveType("string")

    strict, _ = _resolve("Strict")
    assert strict.additional_properties is False
    assert [p.name for p in strict.properties] == ["name"]


def test_generic_reference_name():
    resolved, current = _resolve("Page[User]")
    assert resolved.ref_name == "Page_User_"
    items = resolved.properties[0]
    assert items.type.element_type.ref_name == "User"
    assert set(current.reference_type_map) == {"Page_User_", "User"}


def test_generic_references_are_registered_once():
    program = Program.from_source(MODELS, path="models.py")
    current = MetadataGenerator(program=program)
    source = program.sources[0]
    first = TypeResolver(ast.parse("Page[User]", mode="eval").body, current, source).resolve()
    second = TypeResolver(ast.parse("Page[User]", mode="eval").body, current, source).resolve()
    other = TypeResolver(ast.parse("Page[int]", mode="eval").body, current, source).resolve()
    assert first is second
    assert other.ref_name == "Page_int_"
    assert other.properties[0].type == ArrayType(PrimitiveType("integer"))


def test_self_referential_type_terminates():
    resolved, current = _resolve("Node")
    children, parent = resolved.properties[1], resolved.properties[2]
    assert children.type.element_type is resolved
    assert parent.type.types[0] is resolved
    assert not parent.required
    assert list(current.reference_type_map) == ["Node"]
    assert resolved.to_dict()["properties"][1]["type"] == {
        "dataType": "array",
        "elementType": {"dataType": "refObject", "refName": "Node"},
    }


def test_mutually_referential_types_terminate():
    code = '''
from dataclasses import dataclass

@dataclass
class A:
    b: "B | None"

@dataclass
class B:
    items: list[A]
'''
    a, current = _resolve("A", code)
    b = current.get_reference_type("B")
    assert a.properties[0].type.types[0] is b
    assert b.properties[0].type.element_type is a
    assert set(current.reference_type_map) == {"A", "B"}


def test_flag_auto_values_are_powers_of_two():
    code = '''
from enum import Flag, IntFlag, auto

class Perm(Flag):
    READ = auto()
    WRITE = auto()
    EXECUTE = auto()

class Mode(IntFlag):
    OWNER = 1
    GROUP = 6
    OTHER = auto()
'''
    assert _resolve("Perm", code)[0].enums == [1, 2, 4]
    assert _resolve("Mode", code)[0].enums == [1, 6, 8]


def test_user_types_named_like_typing_names():
    models = parse_source_text(
        "from dataclasses import dataclass\n\n@dataclass\nclass Collection:\n    name: str\n",
        "models.py",
        "models",
    )
    api = parse_source_text(
        "import typing\nimport models\nfrom models import Collection\nfrom typing import Sequence as Seq\n",
        "api.py",
        "api",
    )
    program = Program([models, api])
    current = MetadataGenerator(program=program)

    def resolve(annotation: str):
        return TypeResolver(ast.parse(annotation, mode="eval").body, current, api).resolve()

    imported = resolve("Collection")
    assert isinstance(imported, RefObjectType)
    assert imported.ref_name == "Collection"
    assert resolve("models.Collection") is imported
    assert resolve("list[Collection]").element_type is imported
    assert resolve("typing.Sequence[int]") == ArrayType(PrimitiveType("integer"))
    assert resolve("Seq[str]") == ArrayType(PrimitiveType("string"))
    assert list(current.reference_type_map) == ["Collection"]


def test_aliases():
    user_id, current = _resolve("UserId")
    assert user_id == RefAliasType("UserId", PrimitiveType("integer"))
    assert current.get_reference_type("UserId") is user_id

    email, _ = _resolve("Email")
    assert email.type == PrimitiveType("string")

    names, current = _resolve("Names")
    assert names == ArrayType(PrimitiveType("string"))
    assert current.reference_type_map == {}


# --- Errors ---


def test_unknown_type_names_location():
    with pytest.raises(GenerateMetadataError, match="Unknown type 'Missing' at models.py:1:1"):
        _resolve("Missing")


def test_unbound_type_variable():
    with pytest.raises(GenerateMetadataError, match="Unbound type variable 'T'"):
        _resolve("T")


def test_recursive_transparent_alias():
    with pytest.raises(GenerateMetadataError, match="must be declared as a TypeAlias"):
        _resolve("Tree", "Tree = list['Tree']\n")


def test_non_type_expression():
    with pytest.raises(GenerateMetadataError, match="Unsupported type"):
        _resolve("1")
