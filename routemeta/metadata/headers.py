"""Response header types: an object type whose properties name the headers."""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING

from routemeta.exceptions import GenerateMetadataError
from routemeta.ir.models import HeaderType, NestedObjectLiteralType, RefAliasType, RefObjectType
from routemeta.ir.program import SourceFile, location
from routemeta.metadata.type_resolver import TypeResolver

if TYPE_CHECKING:
    from routemeta.metadata.metadata_generator import MetadataGenerator


def get_header_type(
    type_args: list[ast.expr],
    index: int,
    current: MetadataGenerator,
    source: SourceFile | None,
) -> HeaderType | None:
    """Resolve ``type_args[index]`` as a header type, or ``None`` when absent."""
    if len(type_args) <= index:
        return None
    node = type_args[index]
    if isinstance(node, ast.Constant) and node.value is None:
        return None

    resolved = TypeResolver(node, current, source).resolve()
    seen: set[str] = set()
    while isinstance(resolved, RefAliasType) and resolved.ref_name not in seen:
        seen.add(resolved.ref_name)
        resolved = resolved.type
    if isinstance(resolved, (RefObjectType, NestedObjectLiteralType)):
        return resolved
    raise GenerateMetadataError(
        f"Unable to parse Header Type '{ast.unparse(node)}' at {location(node, source)}"
    )
