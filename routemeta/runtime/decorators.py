"""No-op decorators forming the annotation vocabulary.

They only mark declarations; metadata generation reads them statically from
source, so calling them never changes the decorated class or function.
"""

from __future__ import annotations

from typing import Any


def _marker(*args: Any, **kwargs: Any):
    # Supports both `@Name` and `@Name(...)`
    if len(args) == 1 and not kwargs and callable(args[0]):
        return args[0]

    def decorate(target):
        return target

    return decorate


# Controller-level
Route = _marker
Tags = _marker
Security = _marker
NoSecurity = _marker
Hidden = _marker
Deprecated = _marker


def NewInstancePerRequest(*args: Any):
    """A new instance of the controller is created for each request (the default)."""
    return _marker(*args)


def NoNewInstancePerRequest(*args: Any):
    """The controller is obtained from the configured IoC container on each request."""
    return _marker(*args)


# Method-level
Get = _marker
Post = _marker
Put = _marker
Patch = _marker
Delete = _marker
Head = _marker
Options = _marker
SuccessResponse = _marker
OperationId = _marker
Example = _marker
Produces = _marker


class Response:
    """``@Response[Schema, Headers]("404", "Not found", example)``."""

    def __class_getitem__(cls, item):
        return _marker

    def __new__(cls, *args: Any, **kwargs: Any):
        return _marker(*args, **kwargs)
