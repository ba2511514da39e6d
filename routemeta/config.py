"""Configuration — a YAML file validated with pydantic.

Keys are accepted in camelCase (``entryFile``) or snake_case (``entry_file``):

    entryFile: app/controllers/users.py
    controllerPathGlobs:
      - app/controllers/**/*.py
    noImplicitAdditionalProperties: silently-remove-extras
    routes:
      routesDir: app/generated
      iocModule: app.ioc
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from routemeta.exceptions import ConfigError

DEFAULT_CONFIG_FILE = "routemeta.yaml"

AdditionalPropertiesPolicy = Literal["throw-on-extras", "silently-remove-extras", "ignore"]


class _ConfigModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class RoutesSection(_ConfigModel):
    routes_dir: str = "."
    routes_file_name: str = "routes.py"
    middleware_template: Optional[str] = None
    ioc_module: Optional[str] = None
    authentication_module: Optional[str] = None


class RoutesConfig(_ConfigModel):
    """Options of the route generator."""

    entry_file: Optional[str] = None
    routes_dir: str = "."
    routes_file_name: str = "routes.py"
    no_implicit_additional_properties: AdditionalPropertiesPolicy = "throw-on-extras"
    middleware_template: Optional[str] = None
    ioc_module: Optional[str] = None
    authentication_module: Optional[str] = None


class RouteMetaConfig(_ConfigModel):
    entry_file: Optional[str] = None
    controller_path_globs: list[str] = Field(default_factory=list)
    root: Optional[str] = None
    no_implicit_additional_properties: AdditionalPropertiesPolicy = "throw-on-extras"
    metadata_output: Optional[str] = None
    routes: RoutesSection = Field(default_factory=RoutesSection)

    def routes_config(self) -> RoutesConfig:
        return RoutesConfig(
            entry_file=self.entry_file,
            no_implicit_additional_properties=self.no_implicit_additional_properties,
            **self.routes.model_dump(),
        )


def load_config(path: str | Path = DEFAULT_CONFIG_FILE) -> RouteMetaConfig:
    """Read and validate a configuration file."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    try:
        config = RouteMetaConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config {path}:\n{e}") from e

    if config.entry_file is None and not config.controller_path_globs:
        raise ConfigError(f"Config {path} needs 'entryFile' or 'controllerPathGlobs'")
    return config
