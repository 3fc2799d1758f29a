"""contextum — A small dependency injection container for Python."""

from contextum.context import Context, ContextConfig
from contextum.decorators import Inject, Injected, inject
from contextum.exceptions import (
    ConstructionError,
    CyclicDependencyError,
    DependencyNotFoundError,
    IllegalComponentError,
    RegistrationError,
    ResolutionError,
)
from contextum.graph import DependencyGraph, check_dependencies
from contextum.providers import ComponentProvider, InjectionProvider, InstanceProvider

__all__ = [
    "ContextConfig",
    "Context",
    "Inject",
    "Injected",
    "inject",
    "ComponentProvider",
    "InjectionProvider",
    "InstanceProvider",
    "DependencyGraph",
    "check_dependencies",
    "RegistrationError",
    "IllegalComponentError",
    "ResolutionError",
    "DependencyNotFoundError",
    "CyclicDependencyError",
    "ConstructionError",
]
