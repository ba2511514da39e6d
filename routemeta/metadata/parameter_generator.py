"""Parameter generator — binds one handler argument to a request source.

The source is taken from the argument's default-value marker
(``Query()``, ``Header("X-Id")``, ``Body()``, ...). An argument without a
marker is a path parameter.
"""

from __future__ import annotations

import ast
import re
from typing import TYPE_CHECKING

from routemeta.exceptions import GenerateMetadataError
from routemeta.ir.models import (
    ArrayType,
    EnumType,
    Parameter,
    ParameterSource,
    PrimitiveType,
    RefAliasType,
    RefEnumType,
    Type,
    UnionType,
)
from routemeta.ir.program import SourceFile
from routemeta.metadata.type_resolver import TypeResolver, is_nullable

if TYPE_CHECKING:
    from routemeta.metadata.metadata_generator import MetadataGenerator

MARKERS = {
    "Path": ParameterSource.PATH,
    "Query": ParameterSource.QUERY,
    "Header": ParameterSource.HEADER,
    "Body": ParameterSource.BODY,
    "BodyProp": ParameterSource.BODY_PROP,
    "Request": ParameterSource.REQUEST,
    "Inject": ParameterSource.INJECTED,
}

SIMPLE_DATA_TYPES = {"string", "integer", "double", "boolean", "date", "datetime", "buffer", "any"}

PATH_PARAMETER = re.compile(r"\{(\w+)(?::[^}]*)?\}")


class ParameterGenerator:
    def __init__(
        self,
        arg: ast.arg,
        default: ast.expr | None,
        method_name: str,
        path: str,
        source: SourceFile | None,
        current: MetadataGenerator,
        description: str = "",
    ):
        self.arg = arg
        self.default = default
        self.method_name = method_name
        self.path = path
        self.source = source
        self.current = current
        self.description = description

    def generate(self) -> Parameter:
        marker, source_kind = self._marker()
        values = self._marker_values(marker)

        if source_kind in (ParameterSource.REQUEST, ParameterSource.INJECTED):
            return Parameter(
                name=self.arg.arg,
                parameter_name=self.arg.arg,
                in_=source_kind,
                type=PrimitiveType("object"),
                required=True,
                description=self.description,
            )

        param_type = self._type()
        parameter_name = values.get("name") or self.arg.arg
        has_default = "default" in values
        default = values.get("default")
        if marker is None and self.default is not None:
            # plain default value on an unmarked (path) argument
            raise GenerateMetadataError(
                f"Path parameter '{self.arg.arg}' of '{self.method_name}' method can't have a default value."
            )

        if source_kind == ParameterSource.PATH:
            if parameter_name not in PATH_PARAMETER.findall(self.path):
                raise GenerateMetadataError(
                    f"@Path('{parameter_name}') Can't match in URL: '{self.path}'."
                )
            self._check_supported("Path", parameter_name, param_type, allow_arrays=False)
            required = True
        elif source_kind == ParameterSource.BODY:
            required = not has_default and not is_nullable(param_type)
        else:
            if source_kind in (ParameterSource.QUERY, ParameterSource.HEADER):
                allow_arrays = source_kind == ParameterSource.QUERY
                self._check_supported(marker_name(marker), parameter_name, param_type, allow_arrays)
            required = not has_default and not is_nullable(param_type)

        return Parameter(
            name=self.arg.arg,
            parameter_name=parameter_name,
            in_=source_kind,
            type=param_type,
            required=required,
            default=default,
            description=self.description,
        )

    def _marker(self) -> tuple[ast.Call | None, ParameterSource]:
        node = self.default
        if isinstance(node, ast.Call):
            name = marker_name(node)
            if name in MARKERS:
                return node, MARKERS[name]
        return None, ParameterSource.PATH

    def _marker_values(self, marker: ast.Call | None) -> dict:
        if marker is None:
            return {}
        program = self.current.program
        values = {}
        if marker.args:
            values["name"] = program.evaluate(marker.args[0], self.source)
        for keyword in marker.keywords:
            if keyword.arg in ("name", "default"):
                values[keyword.arg] = program.evaluate(keyword.value, self.source)
        if values.get("name") is not None and not isinstance(values["name"], str):
            raise GenerateMetadataError(
                f"Parameter '{self.arg.arg}' of '{self.method_name}' method must be named by a string."
            )
        return values

    def _type(self) -> Type:
        if self.arg.annotation is None:
            raise GenerateMetadataError(
                f"Parameter '{self.arg.arg}' of '{self.method_name}' method needs a type annotation."
            )
        return TypeResolver(self.arg.annotation, self.current, self.source).resolve()

    def _check_supported(self, label: str, name: str, param_type: Type, allow_arrays: bool):
        if not _is_supported(param_type, allow_arrays):
            raise GenerateMetadataError(
                f"@{label}('{name}') Can't support '{param_type.data_type}' type."
            )


def marker_name(node: ast.Call | None) -> str | None:
    if node is None:
        return None
    func = node.func
    if isinstance(func, ast.Attribute):
        return func.attr
    if isinstance(func, ast.Name):
        return func.id
    return None


def _is_supported(param_type: Type, allow_arrays: bool, seen: frozenset = frozenset()) -> bool:
    if isinstance(param_type, PrimitiveType):
        return param_type.data_type in SIMPLE_DATA_TYPES
    if isinstance(param_type, (EnumType, RefEnumType)):
        return True
    if isinstance(param_type, RefAliasType):
        if param_type.type is None or param_type.ref_name in seen:
            return False
        return _is_supported(param_type.type, allow_arrays, seen | {param_type.ref_name})
    if isinstance(param_type, UnionType):
        return all(_is_supported(member, allow_arrays, seen) for member in param_type.types)
    if isinstance(param_type, ArrayType) and allow_arrays:
        return _is_supported(param_type.element_type, False, seen)
    return False
