"""Binding registry and the resolver built from it."""

import inspect
import logging
from types import MappingProxyType
from typing import Any, Mapping, Optional, Type, TypeVar

from contextum.exceptions import RegistrationError, type_name
from contextum.graph import check_dependencies
from contextum.providers import ComponentProvider, InjectionProvider, InstanceProvider

__all__ = ["ContextConfig", "Context"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Context:
    """Validated, read-only lookup surface over a set of bindings.

    Obtained from :meth:`ContextConfig.get_context`. Nothing is cached:
    every lookup of an implementation binding builds a new instance.
    """

    def __init__(self, providers: Mapping[Any, ComponentProvider]) -> None:
        self._providers = MappingProxyType(dict(providers))

    def get(self, component_type: Type[T]) -> Optional[T]:
        """Build or return the component bound to *component_type*.

        Dependencies of the component are looked up through this same
        context.

        Args:
            component_type: The bound type to look up.

        Returns:
            The component, or ``None`` if nothing is bound to
            *component_type*.

        Raises:
            ConstructionError: If building the component fails.

        Examples:
            >>> config = ContextConfig()
            >>> config.bind(str, "hello")
            >>> context = config.get_context()
            >>> context.get(str)
            'hello'
            >>> context.get(int) is None
            True
        """
        provider = self._providers.get(component_type)
        if provider is None:
            return None
        return provider.get(self)

    def __contains__(self, component_type: Any) -> bool:
        return component_type in self._providers

    def __repr__(self) -> str:
        bound = ", ".join(type_name(t) for t in self._providers)
        return f"Context({bound})"


class ContextConfig:
    """Registry of bindings from component types to providers.

    Bind everything first, then call :meth:`get_context`, which validates
    the whole dependency graph once and hands back a :class:`Context`.

    Args:
        allow_rebinding: When ``False`` (default) binding an already bound
            type raises :class:`~contextum.exceptions.RegistrationError`;
            when ``True`` the last binding wins.

    Examples:
        >>> from abc import ABC
        >>> class Repository(ABC):
        ...     pass
        >>> class InMemoryRepository(Repository):
        ...     pass
        >>> config = ContextConfig()
        >>> config.bind(Repository, InMemoryRepository)
        >>> type(config.get_context().get(Repository)).__name__
        'InMemoryRepository'
    """

    def __init__(self, *, allow_rebinding: bool = False) -> None:
        self._providers: dict[Any, ComponentProvider] = {}
        self._allow_rebinding = allow_rebinding

    def bind(self, component_type: Type[T], target: Any) -> None:
        """Bind *component_type* to an implementation class or an instance.

        A class that is not itself an instance of *component_type* is bound
        as an implementation; anything else is bound as a fixed instance.
        Use :meth:`bind_instance` or :meth:`bind_implementation` to choose
        explicitly.

        Raises:
            RegistrationError: If *component_type* is already bound, or the
                binding is invalid.
            IllegalComponentError: If the implementation class cannot be
                used as a component.
        """
        if inspect.isclass(target) and not _is_instance(target, component_type):
            self.bind_implementation(component_type, target)
        else:
            self.bind_instance(component_type, target)

    def bind_instance(self, component_type: Type[T], instance: T) -> None:
        """Bind *component_type* to a fixed instance, returned by every lookup."""
        if instance is None:
            raise RegistrationError(f"Cannot bind {type_name(component_type)} to None")
        self._register(component_type, InstanceProvider(instance))

    def bind_implementation(self, component_type: Type[T], implementation: type) -> None:
        """Bind *component_type* to a class built by injection on every lookup.

        The class is introspected immediately.

        Raises:
            RegistrationError: If *implementation* is not a subclass of
                *component_type*, or *component_type* is already bound.
            IllegalComponentError: If *implementation* is abstract, has no
                usable constructor or declares an unusable injection point.
        """
        if not _is_subclass(implementation, component_type):
            raise RegistrationError(
                f"{type_name(implementation)} is not a subclass of "
                f"{type_name(component_type)}"
            )
        self._check_unbound(component_type)
        self._register(component_type, InjectionProvider(implementation))

    def dependencies_of(self, component_type: Any) -> list[Any]:
        """The dependency types declared by the binding of *component_type*.

        Raises:
            RegistrationError: If *component_type* is not bound.
        """
        provider = self._providers.get(component_type)
        if provider is None:
            raise RegistrationError(f"No binding for {type_name(component_type)}")
        return provider.dependencies

    def bound_types(self) -> list[Any]:
        return list(self._providers)

    def __contains__(self, component_type: Any) -> bool:
        return component_type in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    def get_context(self) -> Context:
        """Validate every binding and return a :class:`Context`.

        The registry is left untouched either way, so after a failure more
        bindings can be added and validation run again.

        Raises:
            DependencyNotFoundError: A binding depends on an unbound type.
            CyclicDependencyError: Bindings depend on each other in a loop.
        """
        logger.debug("Validating %d bindings", len(self._providers))
        check_dependencies(self._providers)
        return Context(self._providers)

    def _check_unbound(self, component_type: Any) -> None:
        if component_type in self._providers and not self._allow_rebinding:
            raise RegistrationError(
                f"Duplicate binding for {type_name(component_type)}"
            )

    def _register(self, component_type: Any, provider: ComponentProvider) -> None:
        self._check_unbound(component_type)
        if component_type in self._providers:
            logger.debug("Rebinding %s", type_name(component_type))
        self._providers[component_type] = provider
        logger.debug("Bound %s to %r", type_name(component_type), provider)


def _is_protocol(component_type: Any) -> bool:
    return bool(getattr(component_type, "_is_protocol", False))


def _is_subclass(implementation: Any, component_type: Any) -> bool:
    if not inspect.isclass(implementation):
        # rejected as an illegal component by the provider
        return True
    if not inspect.isclass(component_type) or _is_protocol(component_type):
        return True
    return issubclass(implementation, component_type)


def _is_instance(target: Any, component_type: Any) -> bool:
    if not inspect.isclass(component_type) or _is_protocol(component_type):
        return False
    return isinstance(target, component_type)
