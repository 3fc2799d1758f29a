"""Injection markers for contextum.

``@inject`` marks constructors and methods, ``Inject`` marks fields.
Neither registers anything: a class only becomes a component when it is
bound in a :class:`~contextum.context.ContextConfig`.
"""

import inspect
from typing import Annotated, Any, Callable, ClassVar, Final, TypeVar, get_args, get_origin

from contextum.exceptions import RegistrationError

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])

_MARKER = "__contextum_inject__"


class Inject:
    """Field marker, used as ``Annotated`` metadata.

    Either the class or an instance may be used.

    Examples:
        >>> from typing import Annotated
        >>> class Service:
        ...     repository: Annotated[list, Inject]
        >>> Inject() == Inject
        False
        >>> Inject() == Inject()
        True
    """

    def __repr__(self) -> str:
        return "Inject()"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Inject)

    def __hash__(self) -> int:
        return hash(Inject)


Injected = Annotated[T, Inject]
"""Shorthand for ``Annotated[T, Inject]``: ``repository: Injected[Repository]``."""


def inject(target: F) -> F:
    """Mark a constructor or method as an injection point.

    Works on ``__init__``, on instance methods and on classmethods used as
    alternative constructors. For classmethods the decorator may sit above
    or below ``@classmethod``.

    Args:
        target: The function, classmethod or staticmethod to mark.

    Returns:
        *target*, unmodified apart from the marker attribute.

    Raises:
        RegistrationError: If *target* is not a function or method.

    Examples:
        >>> class Service:
        ...     @inject
        ...     def __init__(self, repository: list) -> None:
        ...         self.repository = repository
        >>> is_marked(Service.__init__)
        True
    """
    func = _underlying_function(target)
    if func is None:
        raise RegistrationError(
            f"@inject can only mark functions and methods, got {type(target).__name__}"
        )
    setattr(func, _MARKER, True)
    return target


def is_marked(member: Any) -> bool:
    """Whether *member* (function, classmethod or staticmethod) carries ``@inject``."""
    func = _underlying_function(member)
    return func is not None and getattr(func, _MARKER, False) is True


def is_inject_annotation(annotation: Any) -> bool:
    """Whether an annotation carries the ``Inject`` field marker.

    The marker may sit inside ``Final[...]`` or ``ClassVar[...]``; such
    fields are reported as marked so that they can be rejected as
    immutable rather than silently skipped.

    Examples:
        >>> is_inject_annotation(Injected[int])
        True
        >>> is_inject_annotation(int)
        False
    """
    return _find_marker(annotation)


def _find_marker(annotation: Any) -> bool:
    origin = get_origin(annotation)
    if origin is Annotated:
        base, *metadata = get_args(annotation)
        if any(m is Inject or isinstance(m, Inject) for m in metadata):
            return True
        return _find_marker(base)
    if origin is Final or origin is ClassVar:
        return any(_find_marker(arg) for arg in get_args(annotation))
    return False


def _underlying_function(member: Any) -> "Callable[..., Any] | None":
    if isinstance(member, (classmethod, staticmethod)):
        member = member.__func__
    if inspect.isfunction(member):
        return member
    if inspect.ismethod(member):
        return member.__func__
    return None
