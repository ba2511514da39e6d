"""Annotation vocabulary imported by decorated controller modules."""

from routemeta.runtime.controller import Controller
from routemeta.runtime.decorators import (
    Delete,
    Deprecated,
    Example,
    Get,
    Head,
    Hidden,
    NewInstancePerRequest,
    NoNewInstancePerRequest,
    NoSecurity,
    OperationId,
    Options,
    Patch,
    Post,
    Produces,
    Put,
    Response,
    Route,
    Security,
    SuccessResponse,
    Tags,
)
from routemeta.runtime.parameters import (
    Body,
    BodyProp,
    Header,
    Inject,
    Intersection,
    Path,
    Query,
    Request,
)

__all__ = [
    "Body",
    "BodyProp",
    "Controller",
    "Delete",
    "Deprecated",
    "Example",
    "Get",
    "Head",
    "Header",
    "Hidden",
    "Inject",
    "Intersection",
    "NewInstancePerRequest",
    "NoNewInstancePerRequest",
    "NoSecurity",
    "OperationId",
    "Options",
    "Patch",
    "Path",
    "Post",
    "Produces",
    "Put",
    "Query",
    "Request",
    "Response",
    "Route",
    "Security",
    "SuccessResponse",
    "Tags",
]
