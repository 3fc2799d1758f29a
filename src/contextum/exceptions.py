"""Custom exceptions for the contextum DI framework."""

from typing import Any, Iterable, Optional


def type_name(component: Any) -> str:
    """Return a readable name for a component type.

    Examples:
        >>> type_name(int)
        'int'
        >>> type_name("Repository")
        'Repository'
    """
    return getattr(component, "__name__", None) or str(component)


class RegistrationError(Exception):
    """Raised when a binding cannot be registered.

    Examples:
        >>> raise RegistrationError("Cannot bind Service to None")
        Traceback (most recent call last):
            ...
        contextum.exceptions.RegistrationError: Cannot bind Service to None
    """


class IllegalComponentError(RegistrationError):
    """Raised when an implementation class cannot be used as a component.

    The class is rejected at bind time, before any dependency is looked at:
    it is abstract, it has no usable constructor or several marked ones, it
    marks an immutable field, or it marks a method that cannot be called
    by the container.

    Args:
        component: The offending implementation class.
        reason: Why the class was rejected.

    Examples:
        >>> err = IllegalComponentError(dict, "multiple constructors marked with @inject")
        >>> str(err)
        'Illegal component dict: multiple constructors marked with @inject'
        >>> err.component is dict
        True
    """

    def __init__(self, component: Any, reason: str) -> None:
        super().__init__(f"Illegal component {type_name(component)}: {reason}")
        self.component = component
        self.reason = reason


class ResolutionError(Exception):
    """Raised when a dependency cannot be resolved.

    Includes the dependency chain to help diagnose circular or missing
    dependency issues.

    Args:
        message: Description of the resolution failure.
        chain: The dependency resolution chain that led to the failure.

    Examples:
        >>> raise ResolutionError("Cannot build Service")
        Traceback (most recent call last):
            ...
        contextum.exceptions.ResolutionError: Cannot build Service
    """

    def __init__(self, message: str, chain: "list[str] | None" = None) -> None:
        if chain:
            chain_str = " -> ".join(chain)
            message = f"{message} (resolution chain: {chain_str})"
        super().__init__(message)
        self.chain = chain or []


class DependencyNotFoundError(ResolutionError):
    """Raised when a binding depends on a type that has no binding.

    Args:
        component: The bound type that declares the dependency.
        dependency: The type that nothing is bound to.

    Examples:
        >>> err = DependencyNotFoundError(str, int)
        >>> err.component, err.dependency
        (<class 'str'>, <class 'int'>)
        >>> str(err)
        'No binding found for int required by str (resolution chain: str -> int)'
    """

    def __init__(self, component: Any, dependency: Any) -> None:
        super().__init__(
            f"No binding found for {type_name(dependency)} "
            f"required by {type_name(component)}",
            chain=[type_name(component), type_name(dependency)],
        )
        self.component = component
        self.dependency = dependency


class CyclicDependencyError(ResolutionError):
    """Raised when bindings depend on each other in a loop.

    Args:
        path: The types along the cycle, starting and ending with the type
            that was reached twice.

    Attributes:
        components: Exactly the types that take part in the cycle.
        path: The cycle in traversal order.
    """

    def __init__(self, path: Iterable[Any]) -> None:
        self.path = list(path)
        self.components = frozenset(self.path)
        super().__init__(
            "Cyclic dependency found",
            chain=[type_name(component) for component in self.path],
        )


class ConstructionError(ResolutionError):
    """Raised when building a component fails at lookup time.

    The underlying exception, if any, is chained as ``__cause__``.

    Args:
        component: The implementation class being built.
        message: What went wrong.
        chain: Optional resolution chain.
    """

    def __init__(
        self, component: Any, message: str, chain: Optional[list[str]] = None
    ) -> None:
        super().__init__(
            f"Cannot construct {type_name(component)}: {message}", chain=chain
        )
        self.component = component
