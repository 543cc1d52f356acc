"""Declarative middleware registration.

A middleware config record names the phase, the scope and the factory
arguments of one handler.  Records come either from code
(:meth:`ConfigLoader.from_config`) or from a manifest (:meth:`ConfigLoader.load_manifest`)
shaped like::

    initial:
      myapp.middleware:request_id: {}
    auth:before:
      myapp.middleware:api_key:
        paths: ["/api", {regex: "^/v\\d+"}]
        params: {header: X-Api-Key}
    routes:after:
      myapp.middleware:audit:
        - {params: ["audit.log", 10]}
        - {enabled: false}
"""

import logging
import os
import re
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from werkzeug.utils import ImportStringError, import_string

from .exceptions import MiddlewareConfigError
from .phases import PhaseRegistry, parse_phase_name

logger = logging.getLogger(__name__)


def _compile_scope(value: Any) -> Any:
    if isinstance(value, Mapping):
        if set(value) != {"regex"}:
            raise ValueError(f"Scope mapping must be {{'regex': pattern}} (got {dict(value)!r})")
        return re.compile(value["regex"])
    if isinstance(value, (list, tuple)):
        return [_compile_scope(item) for item in value]
    return value


class MiddlewareConfig(BaseModel):
    """One middleware registration record."""

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    enabled: bool = Field(True, description="Register the handler at all")
    phase: Optional[str] = Field(None, description='Target phase, e.g. "auth" or "routes:after"')
    paths: Any = Field(None, alias="scope", description="Scope passed to the scope matcher")
    params: Any = Field(None, description="Factory argument(s); a list is spread")

    @field_validator("paths", mode="before")
    @classmethod
    def compile_regex_scopes(cls, value: Any) -> Any:
        return _compile_scope(value)

    @model_validator(mode="after")
    def require_phase_when_enabled(self) -> "MiddlewareConfig":
        if self.enabled and not self.phase:
            raise ValueError("phase is required for an enabled middleware")
        return self

    @property
    def has_params(self) -> bool:
        return "params" in self.model_fields_set

    def factory_args(self) -> List[Any]:
        if not self.has_params:
            return []
        if isinstance(self.params, (list, tuple)):
            return list(self.params)
        return [self.params]


def parse_config(config: Union[MiddlewareConfig, Mapping[str, Any], None]) -> MiddlewareConfig:
    """Validate a raw record into a :class:`MiddlewareConfig`.

    Raises:
        MiddlewareConfigError: The record is malformed.
    """
    if isinstance(config, MiddlewareConfig):
        return config
    if config is None:
        config = {}
    if not isinstance(config, Mapping):
        raise MiddlewareConfigError(
            f"Middleware config must be a mapping (got {type(config).__name__})"
        )
    try:
        return MiddlewareConfig.model_validate(dict(config))
    except ValidationError as exc:
        raise MiddlewareConfigError(f"Invalid middleware config: {exc}") from exc


class ConfigLoader:
    """Builds and registers handlers from config records for one application."""

    def __init__(self, app):
        self.app = app

    def from_config(self, factory: Callable, config: Any) -> Optional[Callable]:
        """Call ``factory`` with the record's params and register the result.

        Returns:
            The registered handler, or ``None`` for a disabled record.

        Raises:
            MiddlewareConfigError: The record is malformed.
            UnknownPhaseError: The record names an undefined phase.
        """
        cfg = parse_config(config)
        if not cfg.enabled:
            logger.debug("Skipping disabled middleware %r", factory)
            return None

        name, _ = parse_phase_name(cfg.phase)
        self.app.phases.index(name)

        handler = factory(*cfg.factory_args())
        self.app.middleware(cfg.phase, cfg.paths, handler)
        return handler

    def load_manifest(self, source: Any) -> List[Callable]:
        """Register every record of a manifest.

        Args:
            source: A mapping, a path to a YAML file or an open stream.

        Returns:
            Handlers registered, in manifest order.

        Every factory path, record and phase name is checked before the
        application is touched, so a bad manifest registers nothing.
        """
        manifest = self._read(source)
        if not manifest:
            return []

        phases: List[str] = []
        for key in manifest:
            name, _ = parse_phase_name(key)
            if name not in phases:
                phases.append(name)
        # Dry run on a copy raises ordering conflicts up front.
        PhaseRegistry(self.app.phases.names, anchor=self.app.phases.anchor).define(phases)

        records = list(self._collect(manifest))
        self.app.define_middleware_phases(phases)

        handlers: List[Callable] = []
        for factory, cfg in records:
            handler = self.from_config(factory, cfg)
            if handler is not None:
                handlers.append(handler)

        logger.info("Loaded %d middleware(s) from manifest", len(handlers))
        return handlers

    def _collect(self, manifest: Dict[str, Any]) -> Iterator[Tuple[Callable, MiddlewareConfig]]:
        for phase, factories in manifest.items():
            if not factories:
                continue
            if not isinstance(factories, Mapping):
                raise MiddlewareConfigError(
                    f"Phase {phase!r} must map factory paths to configs"
                )
            for path, configs in factories.items():
                factory = self._resolve(path)
                if not isinstance(configs, list):
                    configs = [configs]
                for config in configs:
                    if config is not None and not isinstance(config, Mapping):
                        raise MiddlewareConfigError(
                            f"Config for {path!r} in phase {phase!r} must be a mapping"
                        )
                    record = dict(config or {})
                    record["phase"] = phase
                    yield factory, parse_config(record)

    def _read(self, source: Any) -> Dict[str, Any]:
        if isinstance(source, Mapping):
            data = source
        elif isinstance(source, (str, os.PathLike)):
            with open(source, encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        elif hasattr(source, "read"):
            data = yaml.safe_load(source)
        else:
            raise MiddlewareConfigError(
                f"Cannot load middleware manifest from {type(source).__name__}"
            )
        if data is None:
            return {}
        if not isinstance(data, Mapping):
            raise MiddlewareConfigError("Middleware manifest must be a mapping of phases")
        return dict(data)

    @staticmethod
    def _resolve(path: str) -> Callable:
        try:
            factory = import_string(path)
        except ImportStringError as exc:
            raise MiddlewareConfigError(f"Cannot import middleware factory {path!r}") from exc
        if not callable(factory):
            raise MiddlewareConfigError(f"Middleware factory {path!r} is not callable")
        return factory
