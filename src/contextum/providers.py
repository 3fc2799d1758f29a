"""Component providers: how a bound type is produced and what it needs."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from contextum.exceptions import ConstructionError, IllegalComponentError, type_name
from contextum.introspection import (
    ConstructorInfo,
    MethodInfo,
    ParameterInfo,
    TypeDescriptor,
    describe,
)

if TYPE_CHECKING:
    from contextum.context import Context

__all__ = [
    "ComponentProvider",
    "InstanceProvider",
    "InjectionProvider",
    "ConstructorInjection",
    "FieldInjection",
    "MethodInjection",
    "InjectionPoint",
]

logger = logging.getLogger(__name__)


class ComponentProvider(ABC):
    """Produces instances of one bound component type."""

    @abstractmethod
    def get(self, context: "Context") -> Any:
        """Produce an instance, pulling dependencies from *context*."""

    @property
    @abstractmethod
    def dependencies(self) -> list[Any]:
        """Every type this provider will ask *context* for, in lookup order."""


class InstanceProvider(ComponentProvider):
    """Always returns the same pre-built instance.

    Examples:
        >>> provider = InstanceProvider("localhost")
        >>> provider.get(None)
        'localhost'
        >>> provider.dependencies
        []
    """

    def __init__(self, instance: Any) -> None:
        self._instance = instance

    def get(self, context: "Context") -> Any:
        return self._instance

    @property
    def dependencies(self) -> list[Any]:
        return []

    def __repr__(self) -> str:
        return f"InstanceProvider({self._instance!r})"


@dataclass(frozen=True)
class ConstructorInjection:
    """The selected constructor: ``__init__`` or a classmethod."""

    name: str
    parameters: tuple[ParameterInfo, ...]

    @property
    def dependencies(self) -> tuple[Any, ...]:
        return tuple(p.declared_type for p in self.parameters)


@dataclass(frozen=True)
class FieldInjection:
    """An attribute assigned after construction."""

    name: str
    owner: type
    declared_type: Any

    @property
    def dependencies(self) -> tuple[Any, ...]:
        return (self.declared_type,)


@dataclass(frozen=True)
class MethodInjection:
    """A method called after field injection."""

    name: str
    owner: type
    parameters: tuple[ParameterInfo, ...]

    @property
    def dependencies(self) -> tuple[Any, ...]:
        return tuple(p.declared_type for p in self.parameters)


InjectionPoint = Union[ConstructorInjection, FieldInjection, MethodInjection]


class InjectionProvider(ComponentProvider):
    """Builds instances of an implementation class through its injection points.

    The injection points are worked out once, here, and every problem with
    the class itself is reported immediately as
    :class:`~contextum.exceptions.IllegalComponentError`:

    * the class is abstract (an ABC with abstract methods, or a Protocol);
    * more than one constructor is marked with ``@inject``, or none is and
      ``__init__`` cannot be called without arguments;
    * a field marked with ``Inject`` cannot be assigned (``Final``,
      ``ClassVar``, frozen dataclass, read-only property);
    * a marked method is a staticmethod or declares its own type
      parameters;
    * an injected parameter has neither a type annotation nor a default.

    Fields are gathered from the class and all of its ancestors. Methods are
    gathered ancestor-first; a marked method is dropped when a more derived
    class redefines the same name, whether or not the redefinition is itself
    marked.

    Args:
        implementation: The concrete class to build.

    Examples:
        >>> from contextum.decorators import inject
        >>> class Engine:
        ...     pass
        >>> class Car:
        ...     @inject
        ...     def __init__(self, engine: Engine) -> None:
        ...         self.engine = engine
        >>> InjectionProvider(Car).dependencies == [Engine]
        True
    """

    def __init__(self, implementation: type) -> None:
        descriptor = describe(implementation)
        if descriptor.is_abstract:
            raise IllegalComponentError(
                implementation, "abstract classes cannot be instantiated"
            )
        self._implementation = implementation
        self._constructor = _select_constructor(descriptor)
        self._fields = _collect_fields(descriptor)
        self._methods = _collect_methods(descriptor)
        self._dependencies = [
            dependency
            for point in self.injection_points
            for dependency in point.dependencies
        ]
        logger.debug(
            "Injection points for %s: constructor %s, fields %s, methods %s",
            type_name(implementation),
            self._constructor.name,
            [f.name for f in self._fields],
            [m.name for m in self._methods],
        )

    @property
    def implementation(self) -> type:
        return self._implementation

    @property
    def constructor(self) -> ConstructorInjection:
        return self._constructor

    @property
    def fields(self) -> list[FieldInjection]:
        return list(self._fields)

    @property
    def methods(self) -> list[MethodInjection]:
        return list(self._methods)

    @property
    def injection_points(self) -> list[InjectionPoint]:
        """Constructor, then fields, then methods, in injection order."""
        return [self._constructor, *self._fields, *self._methods]

    @property
    def dependencies(self) -> list[Any]:
        return list(self._dependencies)

    def get(self, context: "Context") -> Any:
        """Build a new, fully injected instance.

        Raises:
            ConstructionError: If a dependency cannot be obtained from
                *context* or the constructor, a field assignment or an
                injected method fails.
        """
        logger.debug("Constructing %s", type_name(self._implementation))
        instance = self._construct(context)

        for field in self._fields:
            value = self._resolve(context, field.declared_type, f"field {field.name!r}")
            try:
                setattr(instance, field.name, value)
            except Exception as e:
                raise ConstructionError(
                    self._implementation, f"cannot assign field {field.name!r}: {e}"
                ) from e

        for method in self._methods:
            args, kwargs = self._arguments(context, method.parameters, method.name)
            try:
                getattr(instance, method.name)(*args, **kwargs)
            except Exception as e:
                raise ConstructionError(
                    self._implementation, f"injected method {method.name!r} failed: {e}"
                ) from e

        return instance

    def _construct(self, context: "Context") -> Any:
        constructor = self._constructor
        args, kwargs = self._arguments(context, constructor.parameters, constructor.name)
        if constructor.name == "__init__":
            factory = self._implementation
        else:
            factory = getattr(self._implementation, constructor.name)

        try:
            instance = factory(*args, **kwargs)
        except Exception as e:
            raise ConstructionError(
                self._implementation, f"constructor {constructor.name!r} failed: {e}"
            ) from e

        if not isinstance(instance, self._implementation):
            raise ConstructionError(
                self._implementation,
                f"constructor {constructor.name!r} returned "
                f"{type(instance).__name__}, not {type_name(self._implementation)}",
            )
        return instance

    def _arguments(
        self,
        context: "Context",
        parameters: tuple[ParameterInfo, ...],
        member: str,
    ) -> tuple[list[Any], dict[str, Any]]:
        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        for parameter in parameters:
            value = self._resolve(
                context,
                parameter.declared_type,
                f"parameter {parameter.name!r} of {member!r}",
            )
            if parameter.is_positional_only:
                args.append(value)
            else:
                kwargs[parameter.name] = value
        return args, kwargs

    def _resolve(self, context: "Context", dependency: Any, where: str) -> Any:
        try:
            value = context.get(dependency)
        except ConstructionError:
            raise
        except Exception as e:
            raise ConstructionError(
                self._implementation,
                f"cannot resolve {type_name(dependency)} for {where}: {e}",
            ) from e
        if value is None:
            raise ConstructionError(
                self._implementation,
                f"no component bound for {type_name(dependency)} ({where})",
                chain=[type_name(self._implementation), type_name(dependency)],
            )
        return value

    def __repr__(self) -> str:
        return f"InjectionProvider({type_name(self._implementation)})"


def _select_constructor(descriptor: TypeDescriptor) -> ConstructorInjection:
    component = descriptor.type
    marked = descriptor.marked_constructors
    if len(marked) > 1:
        names = ", ".join(c.name for c in marked)
        raise IllegalComponentError(
            component, f"multiple constructors marked with @inject ({names})"
        )

    if marked:
        constructor: ConstructorInfo = marked[0]
    else:
        default = descriptor.default_constructor
        if default is None:
            raise IllegalComponentError(
                component,
                "no constructor marked with @inject and __init__ requires arguments",
            )
        constructor = default

    return ConstructorInjection(
        constructor.name,
        _injected_parameters(component, constructor.name, constructor.parameters),
    )


def _collect_fields(descriptor: TypeDescriptor) -> list[FieldInjection]:
    fields: list[FieldInjection] = []
    seen: set[str] = set()
    for declared in descriptor.chain:
        for field in declared.fields:
            if field.name in seen:
                continue
            seen.add(field.name)
            if not field.marked:
                continue
            if not field.mutable:
                raise IllegalComponentError(
                    descriptor.type,
                    f"field {declared.type.__name__}.{field.name} is marked "
                    "with Inject but cannot be assigned",
                )
            fields.append(FieldInjection(field.name, field.owner, field.declared_type))
    return fields


def _collect_methods(descriptor: TypeDescriptor) -> list[MethodInjection]:
    component = descriptor.type
    overriding: list[MethodInfo] = []
    per_class: list[list[MethodInjection]] = []

    for declared in descriptor.chain:
        collected = []
        for method in declared.methods:
            if not method.marked or method.kind == "class":
                continue
            if any(method.same_signature(o) for o in overriding):
                continue
            if method.kind == "static":
                raise IllegalComponentError(
                    component,
                    f"static method {declared.type.__name__}.{method.name} "
                    "cannot be marked with @inject",
                )
            if method.type_parameter_count:
                raise IllegalComponentError(
                    component,
                    f"method {declared.type.__name__}.{method.name} declares "
                    "type parameters and cannot be injected",
                )
            collected.append(
                MethodInjection(
                    method.name,
                    method.owner,
                    _injected_parameters(component, method.name, method.parameters),
                )
            )
        per_class.append(collected)
        overriding.extend(declared.methods)

    return [method for collected in reversed(per_class) for method in collected]


def _injected_parameters(
    component: type, member: str, parameters: tuple[ParameterInfo, ...]
) -> tuple[ParameterInfo, ...]:
    injected = tuple(p for p in parameters if p.is_required)
    for parameter in injected:
        if parameter.declared_type is None:
            raise IllegalComponentError(
                component,
                f"parameter {parameter.name!r} of {member} has no type annotation",
            )
    return injected
