"""Route generator — turns Metadata into route models and rendered routing glue.

``build_models`` produces the schema dictionaries a request validator works
from; ``build_content`` renders a jinja2 template against a view of the
controllers; ``generate_routes`` writes the rendered file to ``routes_dir``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

from jinja2 import Environment, StrictUndefined

from routemeta.config import RoutesConfig
from routemeta.exceptions import ConfigError
from routemeta.ir.models import (
    ArrayType,
    Controller,
    EnumType,
    IntersectionType,
    Metadata,
    Method,
    NestedObjectLiteralType,
    Parameter,
    PrimitiveType,
    Property,
    RefAliasType,
    RefEnumType,
    RefObjectType,
    TupleType,
    Type,
    UnionType,
)
from routemeta.routes.paths import normalise_path, strip_suffix

logger = logging.getLogger(__name__)

SOURCE_SUFFIX = ".py"
DEFAULT_TEMPLATE = Path(__file__).parent / "templates" / "fastapi_routes.py.j2"


class RouteGenerator:
    def __init__(self, metadata: Metadata, options: RoutesConfig):
        self.metadata = metadata
        self.options = options

    # --- Models ---

    def build_models(self) -> dict[str, dict[str, Any]]:
        models: dict[str, dict[str, Any]] = {}
        for name, reference in self.metadata.reference_type_map.items():
            if isinstance(reference, RefObjectType):
                models[name] = {
                    "dataType": "refObject",
                    "properties": self._build_properties(reference.properties),
                    "additionalProperties": self._additional_properties(
                        reference.additional_properties
                    ),
                }
            elif isinstance(reference, RefEnumType):
                models[name] = {"dataType": "refEnum", "enums": list(reference.enums)}
            elif isinstance(reference, RefAliasType):
                models[name] = {"dataType": "refAlias", "type": self.build_property(reference.type)}
        return models

    def build_property(self, type_: Type | None) -> dict[str, Any]:
        if type_ is None:
            return {"dataType": "any"}
        if isinstance(type_, (RefObjectType, RefEnumType, RefAliasType)):
            return {"ref": type_.ref_name}
        if isinstance(type_, PrimitiveType):
            return {"dataType": type_.data_type}
        if isinstance(type_, EnumType):
            return {"dataType": "enum", "enums": list(type_.enums)}
        if isinstance(type_, ArrayType):
            return {"dataType": "array", "array": self.build_property(type_.element_type)}
        if isinstance(type_, TupleType):
            return {
                "dataType": "tuple",
                "elementTypes": [self.build_property(t) for t in type_.element_types],
            }
        if isinstance(type_, (UnionType, IntersectionType)):
            return {
                "dataType": type_.data_type,
                "subSchemas": [self.build_property(t) for t in type_.types],
            }
        if isinstance(type_, NestedObjectLiteralType):
            return {
                "dataType": "nestedObjectLiteral",
                "nestedProperties": self._build_properties(type_.properties),
                "additionalProperties": self._additional_properties(type_.additional_properties),
            }
        raise TypeError(f"Unknown type {type_!r}")

    def _build_properties(self, properties: list[Property]) -> dict[str, dict[str, Any]]:
        built = {}
        for prop in properties:
            schema = self.build_property(prop.type)
            schema["required"] = prop.required
            if prop.default is not None:
                schema["default"] = prop.default
            built[prop.name] = schema
        return built

    def _additional_properties(self, declared: Type | bool | None) -> dict[str, Any] | bool:
        if declared is False:
            return False
        if declared is not None and declared is not True:
            return self.build_property(declared)
        # Undeclared: both extras policies close the model, "ignore" leaves it open
        return self.options.no_implicit_additional_properties == "ignore"

    # --- Content ---

    def build_content(self, template: str, path_transformer: Callable[[str], str]) -> str:
        environment = Environment(
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        environment.filters["pyrepr"] = repr
        context = {
            "controllers": [
                self._controller_view(controller, path_transformer)
                for controller in self.metadata.controllers
            ],
            "models": self.build_models(),
            "entryFile": self.options.entry_file,
            "iocModule": self.options.ioc_module,
            "authenticationModule": self.options.authentication_module,
            "useSecurity": any(
                method.security
                for controller in self.metadata.controllers
                for method in controller.methods
            ),
            "noImplicitAdditionalProperties": self.options.no_implicit_additional_properties,
        }
        return environment.from_string(template).render(**context)

    def generate_routes(self, path_transformer: Callable[[str], str] = lambda path: path) -> Path:
        """Render the configured (or default) template into the routes file."""
        template_path = Path(self.options.middleware_template or DEFAULT_TEMPLATE)
        if not template_path.is_file():
            raise ConfigError(f"Routes template not found: {template_path}")
        content = self.build_content(template_path.read_text(encoding="utf-8"), path_transformer)

        output_dir = Path(self.options.routes_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / self.options.routes_file_name
        output_path.write_text(content, encoding="utf-8")
        logger.info("Wrote routes for %d controller(s) to %s", len(self.metadata.controllers), output_path)
        return output_path

    def _controller_view(
        self, controller: Controller, path_transformer: Callable[[str], str]
    ) -> dict[str, Any]:
        controller_path = path_transformer(normalise_path(controller.path, "/"))
        return {
            "name": controller.name,
            "path": controller_path,
            "modulePath": self.get_relative_import_path(controller.location),
            "importPath": module_import_path(controller.location),
            "newInstancePerRequest": controller.new_instance_per_request,
            "extendsController": controller.extends_controller,
            "methods": [
                self._method_view(method, controller_path, path_transformer)
                for method in controller.methods
            ],
        }

    def _method_view(
        self, method: Method, controller_path: str, path_transformer: Callable[[str], str]
    ) -> dict[str, Any]:
        method_path = path_transformer(normalise_path(method.path, "/"))
        return {
            "name": method.name,
            "method": method.method.lower(),
            "path": method_path,
            "fullPath": normalise_path(f"{controller_path}{method_path}", "/", "", False),
            "parameters": {p.name: self._parameter_schema(p) for p in method.parameters},
            "security": [dict(requirement) for requirement in method.security],
            "successStatus": method.success_status,
        }

    def _parameter_schema(self, parameter: Parameter) -> dict[str, Any]:
        schema = {
            "in": parameter.in_.value,
            "name": parameter.parameter_name,
            "required": parameter.required,
            **self.build_property(parameter.type),
        }
        if parameter.default is not None:
            schema["default"] = parameter.default
        return schema

    def get_relative_import_path(self, location: str) -> str:
        """``./<location relative to routes_dir>`` without the trailing source suffix."""
        location = strip_suffix(location, SOURCE_SUFFIX)
        relative = os.path.relpath(location, self.options.routes_dir)
        return f"./{relative.replace(os.sep, '/')}"


def module_import_path(location: str) -> str:
    """Dotted module name for a controller file, relative to the working directory."""
    path = Path(strip_suffix(location, SOURCE_SUFFIX))
    if path.is_absolute():
        try:
            path = path.relative_to(Path.cwd())
        except ValueError:
            pass
    parts = [part for part in path.parts if part not in (os.sep, ".")]
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts)
