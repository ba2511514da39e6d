"""Controller generator — validates a decorated class and builds Controller IR.

All class-level decorators are read and validated when the generator is
constructed; any violation raises immediately and aborts the whole run.
"""

from __future__ import annotations

import ast
import logging
from typing import TYPE_CHECKING

from routemeta.exceptions import GenerateMetadataError
from routemeta.ir.models import Controller, Method, Response, Security
from routemeta.ir.program import Declaration, dotted_name
from routemeta.metadata.decorators import (
    get_decorator_values,
    get_decorators_named,
    get_securities,
    has_argument,
)
from routemeta.metadata.headers import get_header_type
from routemeta.metadata.method_generator import MethodGenerator
from routemeta.metadata.type_resolver import TypeResolver

if TYPE_CHECKING:
    from routemeta.metadata.metadata_generator import MetadataGenerator

logger = logging.getLogger(__name__)

# Methods a class must have (itself or through its parents) to be controller-like
CONTROLLER_PROTOCOL = frozenset({"get_headers", "get_status", "set_status"})


class ControllerGenerator:
    def __init__(self, declaration: Declaration, current: MetadataGenerator):
        self.node: ast.ClassDef = declaration.node
        self.source = declaration.source
        self.current = current
        self.path = self._get_path()
        self.tags = self._get_tags()
        self.security = self._get_security()
        self.is_hidden = self._get_is_hidden()
        self.common_responses = self._get_common_responses()
        self.is_controller_like = self._exhibits_controller_protocol()
        self.new_instance_per_request = self._get_new_instance_per_request()

    @property
    def name(self) -> str:
        return self.node.name

    def is_valid(self) -> bool:
        return self.path is not None

    def generate(self) -> Controller:
        if self.source is None:
            raise GenerateMetadataError("Controller node doesn't have a valid parent source file.")
        if not self.node.name:
            raise GenerateMetadataError("Controller node doesn't have a valid name.")

        controller = Controller(
            location=self.source.path,
            name=self.node.name,
            path=self.path or "",
            methods=self._build_methods(),
            new_instance_per_request=self.new_instance_per_request,
            extends_controller=self.is_controller_like,
        )
        logger.debug(
            "Generated controller %s at '%s' with %d method(s)",
            controller.name,
            controller.path,
            len(controller.methods),
        )
        return controller

    def _build_methods(self) -> list[Method]:
        generators = [
            MethodGenerator(
                member,
                self.source,
                self.current,
                self.common_responses,
                self.path,
                self.tags,
                self.security,
                self.is_hidden,
            )
            for member in self.node.body
            if isinstance(member, (ast.FunctionDef, ast.AsyncFunctionDef))
        ]
        return [generator.generate() for generator in generators if generator.is_valid()]

    def _get_path(self) -> str | None:
        decorators = get_decorators_named(self.node, "Route")
        if not decorators:
            return None
        if len(decorators) > 1:
            raise GenerateMetadataError(f"Only one Route decorator allowed in '{self.name}' class.")

        if not has_argument(decorators[0], 0, "path"):
            return ""
        path = get_decorator_values(decorators[0], self.current.program, self.source, ("path",))[0]
        if not isinstance(path, str):
            raise GenerateMetadataError(f"Route path in '{self.name}' class must be a constant string.")
        return path

    def _get_tags(self) -> list[str] | None:
        decorators = get_decorators_named(self.node, "Tags")
        if not decorators:
            return None
        if len(decorators) > 1:
            raise GenerateMetadataError(f"Only one Tags decorator allowed in '{self.name}' class.")

        values = get_decorator_values(decorators[0], self.current.program, self.source)
        return [str(value) for value in values if value is not None]

    def _get_security(self) -> list[Security]:
        no_security = get_decorators_named(self.node, "NoSecurity")
        security = get_decorators_named(self.node, "Security")

        if no_security and security:
            raise GenerateMetadataError(f"NoSecurity decorator is unnecessary in '{self.name}' class.")
        if not security:
            return []
        return [get_securities(d, self.current.program, self.source) for d in security]

    def _get_is_hidden(self) -> bool:
        decorators = get_decorators_named(self.node, "Hidden")
        if not decorators:
            return False
        if len(decorators) > 1:
            raise GenerateMetadataError(f"Only one Hidden decorator allowed in '{self.name}' class.")
        return True

    def _get_common_responses(self) -> list[Response]:
        responses = []
        for decorator in get_decorators_named(self.node, "Response"):
            name, description, example = (
                get_decorator_values(
                    decorator,
                    self.current.program,
                    self.source,
                    ("name", "description", "example"),
                )
                + [None, None, None]
            )[:3]
            if name is None or name == "":
                raise GenerateMetadataError("Controller's responses should have an explicit name.")

            schema = None
            if decorator.type_args:
                schema = TypeResolver(decorator.type_args[0], self.current, self.source).resolve()
            responses.append(
                Response(
                    name=str(name),
                    description=description or "",
                    examples=None if example is None else [example],
                    schema=schema,
                    headers=get_header_type(decorator.type_args, 1, self.current, self.source),
                )
            )
        return responses

    def _get_new_instance_per_request(self) -> bool:
        forced = get_decorators_named(self.node, "NewInstancePerRequest")
        shared = get_decorators_named(self.node, "NoNewInstancePerRequest")

        if len(forced) > 1:
            raise GenerateMetadataError(
                f"Only one NewInstancePerRequest decorator allowed in '{self.name}' class."
            )
        if len(shared) > 1:
            raise GenerateMetadataError(
                f"Only one NoNewInstancePerRequest decorator allowed in '{self.name}' class."
            )
        if forced and shared:
            raise GenerateMetadataError(
                f"NewInstancePerRequest and NoNewInstancePerRequest are mutually exclusive in '{self.name}' class."
            )
        if not forced and not shared:
            return True
        if shared and self.is_controller_like:
            raise GenerateMetadataError(
                f"NoNewInstancePerRequest decorated class '{self.name}' should not extend Controller"
            )
        return bool(forced)

    def _exhibits_controller_protocol(self) -> bool:
        return CONTROLLER_PROTOCOL <= self._method_names(Declaration(self.node, self.source), set())

    def _method_names(self, declaration: Declaration, visited: set[int]) -> set[str]:
        """Method names declared by the class and its single-parent chain."""
        class_node = declaration.node
        if id(class_node) in visited:
            return set()
        visited.add(id(class_node))

        names = {
            member.name
            for member in class_node.body
            if isinstance(member, (ast.FunctionDef, ast.AsyncFunctionDef))
        }
        parent = self._parent_class(declaration)
        if parent is not None:
            names |= self._method_names(parent, visited)
        return names

    def _parent_class(self, declaration: Declaration) -> Declaration | None:
        # The first base that resolves to a class declaration; others are ignored
        for base in declaration.node.bases:
            target = base.value if isinstance(base, ast.Subscript) else base
            name = dotted_name(target)
            if name is None:
                continue
            parent = self.current.program.lookup(name, declaration.source)
            if parent is not None and isinstance(parent.node, ast.ClassDef):
                return parent
        return None
