"""Default-value markers that bind a handler parameter to a request source."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

_MISSING: Any = object()


@dataclass(frozen=True)
class ParameterMarker:
    name: str | None = None
    default: Any = _MISSING


class Path(ParameterMarker):
    pass


class Query(ParameterMarker):
    pass


class Header(ParameterMarker):
    pass


class BodyProp(ParameterMarker):
    pass


@dataclass(frozen=True)
class Body:
    pass


@dataclass(frozen=True)
class Request:
    pass


@dataclass(frozen=True)
class Inject:
    pass


class Intersection:
    """``Intersection[A, B]`` — a value satisfying every member type."""

    def __class_getitem__(cls, items):
        return Any
