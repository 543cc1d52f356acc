"""phaseware — phase-ordered middleware pipelines on Werkzeug."""

from .app import Application
from .config import ConfigLoader, MiddlewareConfig
from .entry import HandlerEntry, unwrap_handler
from .exceptions import (
    InvalidHandlerError,
    InvalidPhaseError,
    MiddlewareConfigError,
    MiddlewareNotInstalled,
    PhaseOrderingConflict,
    PhasewareError,
    UnknownPhaseError,
)
from .mount import MountAdapter, MountContext
from .phases import DEFAULT_PHASES, PhaseRegistry
from .scope import ScopeMatcher
from .signals import app_mounted
from .stack import PipelineStack
from .wrappers import Request, Response

__all__ = [
    "Application",
    "ConfigLoader",
    "MiddlewareConfig",
    "HandlerEntry",
    "unwrap_handler",
    "PhasewareError",
    "PhaseOrderingConflict",
    "InvalidPhaseError",
    "UnknownPhaseError",
    "InvalidHandlerError",
    "MiddlewareConfigError",
    "MiddlewareNotInstalled",
    "MountAdapter",
    "MountContext",
    "DEFAULT_PHASES",
    "PhaseRegistry",
    "ScopeMatcher",
    "app_mounted",
    "PipelineStack",
    "Request",
    "Response",
]

__version__ = "0.1.0"
