"""Errors raised while generating metadata or reading configuration."""


class RouteMetaError(Exception):
    """Base class for every routemeta failure."""


class GenerateMetadataError(RouteMetaError):
    """A declaration violates the annotation rules; the whole run is aborted."""


class ConfigError(RouteMetaError):
    """A configuration file is missing or malformed."""
