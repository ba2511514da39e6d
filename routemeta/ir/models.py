"""Metadata IR — the normalized description of controllers and types.

These models are what the controller extractor builds from decorated source
and what the route generator (and any documentation emitter) reads. Python
attributes are snake_case; ``to_dict()`` produces the camelCase wire form.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class ParameterSource(Enum):
    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    BODY = "body"
    BODY_PROP = "body-prop"
    REQUEST = "request"
    INJECTED = "injected"


# scheme name -> scopes
Security = dict[str, list[str]]


# --- Types ---


@dataclass
class PrimitiveType:
    data_type: str

    def to_dict(self) -> dict:
        return {"dataType": self.data_type}


@dataclass
class ArrayType:
    element_type: Type
    data_type: str = field(default="array", init=False)

    def to_dict(self) -> dict:
        return {"dataType": self.data_type, "elementType": type_to_dict(self.element_type)}


@dataclass
class TupleType:
    element_types: list[Type]
    data_type: str = field(default="tuple", init=False)

    def to_dict(self) -> dict:
        return {
            "dataType": self.data_type,
            "elementTypes": [type_to_dict(t) for t in self.element_types],
        }


@dataclass
class UnionType:
    types: list[Type]
    data_type: str = field(default="union", init=False)

    def to_dict(self) -> dict:
        return {"dataType": self.data_type, "types": [type_to_dict(t) for t in self.types]}


@dataclass
class IntersectionType:
    types: list[Type]
    data_type: str = field(default="intersection", init=False)

    def to_dict(self) -> dict:
        return {"dataType": self.data_type, "types": [type_to_dict(t) for t in self.types]}


@dataclass
class EnumType:
    """Literal values; ``None`` stands for the null literal."""

    enums: list[Any]
    data_type: str = field(default="enum", init=False)

    def to_dict(self) -> dict:
        return {"dataType": self.data_type, "enums": list(self.enums)}


@dataclass
class Property:
    name: str
    type: Type
    required: bool = True
    default: Any = None
    description: str = ""

    def to_dict(self) -> dict:
        data = {"name": self.name, "type": type_to_dict(self.type), "required": self.required}
        if self.default is not None:
            data["default"] = self.default
        if self.description:
            data["description"] = self.description
        return data


@dataclass
class NestedObjectLiteralType:
    properties: list[Property] = field(default_factory=list)
    additional_properties: Type | None = None
    data_type: str = field(default="nestedObjectLiteral", init=False)

    def to_dict(self) -> dict:
        data = {
            "dataType": self.data_type,
            "properties": [p.to_dict() for p in self.properties],
        }
        if self.additional_properties is not None:
            data["additionalProperties"] = type_to_dict(self.additional_properties)
        return data


# --- Reference types (registered by name) ---


@dataclass
class RefObjectType:
    ref_name: str
    properties: list[Property] = field(default_factory=list)
    # None: not declared; False: declared closed; a Type: extras must match it
    additional_properties: Type | bool | None = None
    description: str = ""
    data_type: str = field(default="refObject", init=False)

    def to_dict(self) -> dict:
        data = {
            "dataType": self.data_type,
            "refName": self.ref_name,
            "properties": [p.to_dict() for p in self.properties],
        }
        if self.additional_properties is False:
            data["additionalProperties"] = False
        elif self.additional_properties is not None:
            data["additionalProperties"] = type_to_dict(self.additional_properties)
        if self.description:
            data["description"] = self.description
        return data

    def reference(self) -> dict:
        return {"dataType": self.data_type, "refName": self.ref_name}


@dataclass
class RefEnumType:
    ref_name: str
    enums: list[Any] = field(default_factory=list)
    enum_varnames: list[str] = field(default_factory=list)
    description: str = ""
    data_type: str = field(default="refEnum", init=False)

    def to_dict(self) -> dict:
        data = {
            "dataType": self.data_type,
            "refName": self.ref_name,
            "enums": list(self.enums),
            "enumVarnames": list(self.enum_varnames),
        }
        if self.description:
            data["description"] = self.description
        return data

    def reference(self) -> dict:
        return {"dataType": self.data_type, "refName": self.ref_name}


@dataclass
class RefAliasType:
    ref_name: str
    type: Type | None = None
    description: str = ""
    data_type: str = field(default="refAlias", init=False)

    def to_dict(self) -> dict:
        data = {
            "dataType": self.data_type,
            "refName": self.ref_name,
            "type": type_to_dict(self.type),
        }
        if self.description:
            data["description"] = self.description
        return data

    def reference(self) -> dict:
        return {"dataType": self.data_type, "refName": self.ref_name}


ReferenceType = Union[RefObjectType, RefEnumType, RefAliasType]

Type = Union[
    PrimitiveType,
    ArrayType,
    TupleType,
    UnionType,
    IntersectionType,
    EnumType,
    NestedObjectLiteralType,
    RefObjectType,
    RefEnumType,
    RefAliasType,
]

# Header types are object types: their properties map header name -> type
HeaderType = Union[RefObjectType, NestedObjectLiteralType]


def type_to_dict(type_: Type | None) -> dict | None:
    """Serialize a type in use position; reference types become references."""
    if type_ is None:
        return None
    if isinstance(type_, (RefObjectType, RefEnumType, RefAliasType)):
        return type_.reference()
    return type_.to_dict()


# --- Controllers ---


@dataclass
class Response:
    name: str
    description: str = ""
    examples: list[Any] | None = None
    schema: Type | None = None
    headers: HeaderType | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"name": self.name, "description": self.description}
        if self.examples is not None:
            data["examples"] = list(self.examples)
        if self.schema is not None:
            data["schema"] = type_to_dict(self.schema)
        if self.headers is not None:
            data["headers"] = type_to_dict(self.headers)
        return data


@dataclass
class Parameter:
    name: str
    parameter_name: str
    in_: ParameterSource
    type: Type
    required: bool = True
    default: Any = None
    description: str = ""

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "parameterName": self.parameter_name,
            "in": self.in_.value,
            "type": type_to_dict(self.type),
            "required": self.required,
            "description": self.description,
        }
        if self.default is not None:
            data["default"] = self.default
        return data


@dataclass
class Method:
    name: str
    method: str  # HTTP verb, lowercase
    path: str
    type: Type
    parameters: list[Parameter] = field(default_factory=list)
    responses: list[Response] = field(default_factory=list)
    success_status: int | None = None
    tags: list[str] = field(default_factory=list)
    security: list[Security] = field(default_factory=list)
    is_hidden: bool = False
    deprecated: bool = False
    operation_id: str | None = None
    summary: str = ""
    description: str = ""
    produces: str | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "method": self.method,
            "path": self.path,
            "type": type_to_dict(self.type),
            "parameters": [p.to_dict() for p in self.parameters],
            "responses": [r.to_dict() for r in self.responses],
            "successStatus": self.success_status,
            "tags": list(self.tags),
            "security": [dict(s) for s in self.security],
            "isHidden": self.is_hidden,
            "deprecated": self.deprecated,
            "operationId": self.operation_id,
            "summary": self.summary,
            "description": self.description,
            "produces": self.produces,
        }


@dataclass
class Controller:
    location: str
    name: str
    path: str
    methods: list[Method] = field(default_factory=list)
    new_instance_per_request: bool = True
    extends_controller: bool = False

    def to_dict(self) -> dict:
        return {
            "location": self.location,
            "name": self.name,
            "path": self.path,
            "methods": [m.to_dict() for m in self.methods],
            "newInstancePerRequest": self.new_instance_per_request,
            "extendsController": self.extends_controller,
        }


@dataclass
class Metadata:
    """The complete result of one metadata generation run."""

    controllers: list[Controller] = field(default_factory=list)
    reference_type_map: dict[str, ReferenceType] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "controllers": [c.to_dict() for c in self.controllers],
            "referenceTypeMap": {
                name: ref.to_dict() for name, ref in self.reference_type_map.items()
            },
        }
