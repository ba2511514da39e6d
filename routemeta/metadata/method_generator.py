"""Method generator — builds Method IR for one handler of a controller.

Controller-level tags, security, hidden flag and common responses are
threaded in at construction and merged with what the method declares:
- tags: controller tags first, then method tags, without duplicates
- security: the method's own requirements replace the controller's;
  ``NoSecurity`` on the method clears them
- hidden: hidden if either the controller or the method is
- responses: controller responses, method responses, then the success response
"""

from __future__ import annotations

import ast
import inspect
import logging
import re
from typing import TYPE_CHECKING, Any

from routemeta.exceptions import GenerateMetadataError
from routemeta.ir.models import (
    Method,
    Parameter,
    ParameterSource,
    PrimitiveType,
    Response,
    Security,
    Type,
)
from routemeta.ir.program import SourceFile
from routemeta.metadata.decorators import (
    Decorator,
    get_decorator_values,
    get_decorators,
    get_decorators_named,
    get_securities,
    has_argument,
)
from routemeta.metadata.headers import get_header_type
from routemeta.metadata.parameter_generator import ParameterGenerator
from routemeta.metadata.type_resolver import TypeResolver

if TYPE_CHECKING:
    from routemeta.metadata.metadata_generator import MetadataGenerator

logger = logging.getLogger(__name__)

HTTP_VERBS = ("Get", "Post", "Put", "Patch", "Delete", "Head", "Options")
SINGLE_USE_DECORATORS = ("Tags", "SuccessResponse", "OperationId", "Hidden", "Deprecated", "Produces")

_SECTION = re.compile(r"^(Args|Arguments|Parameters|Returns|Return|Raises|Yields|Examples?|Notes?):\s*$")
_ARG_ENTRY = re.compile(r"^(\*{0,2}\w+)\s*(?:\([^)]*\))?\s*:\s*(.*)$")


class MethodGenerator:
    def __init__(
        self,
        node: ast.FunctionDef | ast.AsyncFunctionDef,
        source: SourceFile | None,
        current: MetadataGenerator,
        common_responses: list[Response],
        parent_path: str | None = None,
        parent_tags: list[str] | None = None,
        parent_security: list[Security] | None = None,
        is_parent_hidden: bool = False,
    ):
        self.node = node
        self.source = source
        self.current = current
        self.common_responses = common_responses
        self.parent_path = parent_path
        self.parent_tags = parent_tags
        self.parent_security = parent_security
        self.is_parent_hidden = is_parent_hidden
        self.http_method, self.path = self._process_method_decorators()

    def is_valid(self) -> bool:
        return self.http_method is not None

    def generate(self) -> Method:
        if not self.is_valid():
            raise GenerateMetadataError(f"'{self.node.name}' isn't a valid controller method.")
        self._check_single_use()

        summary, description, arg_descriptions = parse_docstring(ast.get_docstring(self.node))
        return_type = self._return_type()
        parameters = self._build_parameters(arg_descriptions)
        self._validate_body(parameters)

        success_name, success_description, produces = self._success_response(return_type)
        responses = [*self.common_responses, *self._method_responses()]
        responses.append(
            Response(
                name=success_name,
                description=success_description,
                examples=self._examples(),
                schema=return_type,
            )
        )

        method = Method(
            name=self.node.name,
            method=self.http_method.lower(),
            path=self.path,
            type=return_type,
            parameters=parameters,
            responses=responses,
            success_status=int(success_name) if success_name.isdigit() else None,
            tags=self._tags(),
            security=self._security(),
            is_hidden=self.is_parent_hidden or self._is_hidden(),
            deprecated=bool(self._decorators("Deprecated")),
            operation_id=self._single_value("OperationId"),
            summary=summary,
            description=description,
            produces=produces or self._single_value("Produces"),
        )
        logger.debug("Generated method %s %s (%s)", method.method.upper(), method.path, method.name)
        return method

    def _process_method_decorators(self) -> tuple[str | None, str]:
        decorators = get_decorators(self.node, lambda name: name in HTTP_VERBS)
        if not decorators:
            return None, ""
        if len(decorators) > 1:
            found = ", ".join(d.name for d in decorators)
            raise GenerateMetadataError(
                f"Only one HTTP Method decorator in '{self.node.name}' method is acceptable, Found: {found}"
            )
        decorator = decorators[0]
        if not has_argument(decorator, 0, "path"):
            return decorator.name, ""
        path = get_decorator_values(decorator, self.current.program, self.source, ("path",))[0]
        if not isinstance(path, str):
            raise GenerateMetadataError(
                f"{decorator.name} path in '{self.node.name}' method must be a constant string."
            )
        return decorator.name, path

    def _decorators(self, name: str) -> list[Decorator]:
        return get_decorators_named(self.node, name)

    def _check_single_use(self):
        for name in SINGLE_USE_DECORATORS:
            if len(self._decorators(name)) > 1:
                raise GenerateMetadataError(
                    f"Only one {name} decorator allowed in '{self.node.name}' method."
                )

    def _single_value(self, name: str) -> Any:
        decorators = self._decorators(name)
        if not decorators:
            return None
        values = get_decorator_values(decorators[0], self.current.program, self.source)
        return values[0] if values else None

    # --- Parameters ---

    def _build_parameters(self, descriptions: dict[str, str]) -> list[Parameter]:
        args = self.node.args
        for variadic in (args.vararg, args.kwarg):
            if variadic is not None:
                raise GenerateMetadataError(
                    f"Variadic parameter '{variadic.arg}' is not supported in '{self.node.name}' method."
                )

        positional = [*args.posonlyargs, *args.args]
        defaults: list[ast.expr | None] = [None] * (len(positional) - len(args.defaults))
        defaults.extend(args.defaults)
        pairs = list(zip(positional, defaults)) + list(zip(args.kwonlyargs, args.kw_defaults))

        is_static = any(
            isinstance(d, ast.Name) and d.id == "staticmethod" for d in self.node.decorator_list
        )
        if pairs and not is_static and pairs[0][0].arg in ("self", "cls"):
            pairs = pairs[1:]

        full_path = f"{self.parent_path or ''}/{self.path}"
        return [
            ParameterGenerator(
                arg,
                default,
                self.node.name,
                full_path,
                self.source,
                self.current,
                descriptions.get(arg.arg, ""),
            ).generate()
            for arg, default in pairs
        ]

    def _validate_body(self, parameters: list[Parameter]):
        body = [p for p in parameters if p.in_ == ParameterSource.BODY]
        body_props = [p for p in parameters if p.in_ == ParameterSource.BODY_PROP]
        if len(body) > 1:
            raise GenerateMetadataError(f"Only one body parameter allowed in '{self.node.name}' method.")
        if body and body_props:
            raise GenerateMetadataError(
                f"Choose either during @Body or @BodyProp in '{self.node.name}' method."
            )

    # --- Responses ---

    def _return_type(self) -> Type:
        if self.node.returns is None:
            return PrimitiveType("any")
        return TypeResolver(self.node.returns, self.current, self.source).resolve()

    def _success_response(self, return_type: Type) -> tuple[str, str, str | None]:
        is_void = isinstance(return_type, PrimitiveType) and return_type.data_type == "void"
        decorators = self._decorators("SuccessResponse")
        if not decorators:
            return ("204", "No content", None) if is_void else ("200", "Ok", None)

        name, description, produces = (
            get_decorator_values(
                decorators[0],
                self.current.program,
                self.source,
                ("name", "description", "produces"),
            )
            + [None, None, None]
        )[:3]
        if name is None:
            name = "204" if is_void else "200"
        return str(name), description or "", produces

    def _method_responses(self) -> list[Response]:
        responses = []
        for decorator in self._decorators("Response"):
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
                raise GenerateMetadataError("Method's responses should have an explicit name.")
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

    def _examples(self) -> list[Any] | None:
        examples = [
            values[0]
            for values in (
                get_decorator_values(d, self.current.program, self.source)
                for d in self._decorators("Example")
            )
            if values and values[0] is not None
        ]
        return examples or None

    # --- Inherited metadata ---

    def _tags(self) -> list[str]:
        tags = list(self.parent_tags or [])
        for decorator in self._decorators("Tags"):
            for value in get_decorator_values(decorator, self.current.program, self.source):
                if value is not None and str(value) not in tags:
                    tags.append(str(value))
        return tags

    def _security(self) -> list[Security]:
        no_security = self._decorators("NoSecurity")
        security = self._decorators("Security")
        if no_security and security:
            raise GenerateMetadataError(
                f"NoSecurity decorator is unnecessary in '{self.node.name}' method."
            )
        if no_security:
            return []
        if security:
            return [get_securities(d, self.current.program, self.source) for d in security]
        return list(self.parent_security or [])

    def _is_hidden(self) -> bool:
        return bool(self._decorators("Hidden"))


def parse_docstring(docstring: str | None) -> tuple[str, str, dict[str, str]]:
    """Split a Google-style docstring into summary, description and argument docs."""
    if not docstring:
        return "", "", {}
    docstring = inspect.cleandoc(docstring)

    paragraphs: list[list[str]] = [[]]
    arguments: dict[str, str] = {}
    section = None
    entry_indent = None
    current_arg = None
    for line in docstring.splitlines():
        stripped = line.strip()
        indent = len(line) - len(line.lstrip())
        header = _SECTION.match(stripped)
        if header and indent == 0:
            section, entry_indent, current_arg = header.group(1), None, None
            continue
        if section is not None and (not stripped or indent > 0):
            if section not in ("Args", "Arguments", "Parameters") or not stripped:
                continue
            if entry_indent is None:
                entry_indent = indent
            entry = _ARG_ENTRY.match(stripped)
            if entry and indent == entry_indent:
                current_arg = entry.group(1).lstrip("*")
                arguments[current_arg] = entry.group(2)
            elif current_arg is not None:
                arguments[current_arg] = f"{arguments[current_arg]} {stripped}".strip()
            continue
        section = None
        if not stripped:
            if paragraphs[-1]:
                paragraphs.append([])
            continue
        paragraphs[-1].append(stripped)

    texts = [" ".join(p) for p in paragraphs if p]
    summary = texts[0] if texts else ""
    description = "\n\n".join(texts[1:])
    return summary, description, arguments
