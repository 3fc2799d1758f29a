"""Type introspection used to discover injection points.

:func:`describe` turns a class into a :class:`TypeDescriptor`: its
constructors, and for every class on its ancestor chain the fields and
methods declared there, each flagged with whether it carries an injection
marker. Deciding which of those become injection points is left to
:class:`~contextum.providers.InjectionProvider`.

Method signatures are evaluated only for members that carry a marker, and
a field annotation that cannot be resolved is skipped unless it names the
marker, so a class with unrelated unresolvable forward references can still
be described.
"""

import ast
import builtins
import dataclasses
import inspect
import sys
from dataclasses import dataclass
from typing import (
    Annotated,
    Any,
    Callable,
    ClassVar,
    Final,
    Optional,
    ParamSpec,
    TypeVar,
    get_args,
    get_origin,
)

from contextum.decorators import Inject, is_inject_annotation, is_marked
from contextum.exceptions import IllegalComponentError

__all__ = [
    "ParameterInfo",
    "ConstructorInfo",
    "FieldInfo",
    "MethodInfo",
    "ClassDescriptor",
    "TypeDescriptor",
    "describe",
]

_REQUIRED_KINDS = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
    inspect.Parameter.KEYWORD_ONLY,
)

_CONSTRUCTOR_NAMES = frozenset({"__init__", "__new__"})


@dataclass(frozen=True)
class ParameterInfo:
    """One parameter of a constructor or method.

    Attributes:
        name: Parameter name.
        declared_type: The annotated type with ``Annotated`` metadata
            stripped, or ``None`` when the parameter is not annotated.
        kind: The ``inspect.Parameter`` kind.
        has_default: Whether the parameter declares a default value.
    """

    name: str
    declared_type: Optional[Any]
    kind: Any
    has_default: bool

    @property
    def is_required(self) -> bool:
        """A parameter the caller must supply: not variadic, no default."""
        return self.kind in _REQUIRED_KINDS and not self.has_default

    @property
    def is_positional_only(self) -> bool:
        return self.kind is inspect.Parameter.POSITIONAL_ONLY


@dataclass(frozen=True)
class ConstructorInfo:
    """``__init__`` or a classmethod alternative constructor."""

    name: str
    owner: type
    parameters: tuple[ParameterInfo, ...]
    marked: bool

    @property
    def required_parameters(self) -> tuple[ParameterInfo, ...]:
        return tuple(p for p in self.parameters if p.is_required)

    @property
    def is_default(self) -> bool:
        """An ``__init__`` that can be called with no arguments."""
        return self.name == "__init__" and not self.required_parameters


@dataclass(frozen=True)
class FieldInfo:
    """An annotated attribute declared directly on one class.

    Attributes:
        name: Attribute name.
        owner: The class whose body declares the annotation.
        declared_type: The annotated type, unwrapped from ``Annotated``,
            ``Final`` and ``ClassVar``.
        marked: Whether the annotation carries the ``Inject`` marker.
        mutable: Whether the attribute can be assigned on an instance.
    """

    name: str
    owner: type
    declared_type: Any
    marked: bool
    mutable: bool


@dataclass(frozen=True)
class MethodInfo:
    """A named member declared directly on one class.

    Non-callable attributes are reported with ``kind="attribute"`` since
    they shadow same-named methods of ancestors just like methods do.

    Attributes:
        name: Member name.
        owner: The class whose ``__dict__`` holds the member.
        kind: ``"instance"``, ``"class"``, ``"static"`` or ``"attribute"``.
        parameters: Parameters after ``self``/``cls``. Only evaluated for
            marked members, empty otherwise.
        marked: Whether the member carries ``@inject``.
        type_parameter_count: Number of type parameters the member declares,
            either PEP 695 style or as ``TypeVar`` annotations.
    """

    name: str
    owner: type
    kind: str
    parameters: tuple[ParameterInfo, ...]
    marked: bool
    type_parameter_count: int = 0

    def same_signature(self, other: "MethodInfo") -> bool:
        """Whether *other* would override (or be overridden by) this member.

        Python resolves attributes by name alone, so a same-named member of a
        more derived class hides this one whatever its parameters are.
        """
        return self.name == other.name

    @property
    def dependencies(self) -> tuple[Any, ...]:
        return tuple(p.declared_type for p in self.parameters if p.is_required)


@dataclass(frozen=True)
class ClassDescriptor:
    """Members declared in the body of a single class."""

    type: type
    fields: tuple[FieldInfo, ...]
    methods: tuple[MethodInfo, ...]


@dataclass(frozen=True)
class TypeDescriptor:
    """Everything the injection machinery needs to know about a class.

    Attributes:
        type: The described class.
        is_abstract: Whether the class cannot be instantiated directly.
        constructors: The effective ``__init__`` followed by every marked
            classmethod constructor visible on the class.
        chain: One :class:`ClassDescriptor` per class in the MRO, most
            derived first, ``object`` excluded.
    """

    type: type
    is_abstract: bool
    constructors: tuple[ConstructorInfo, ...]
    chain: tuple[ClassDescriptor, ...]

    @property
    def ancestors(self) -> tuple[type, ...]:
        return tuple(c.type for c in self.chain)

    @property
    def marked_constructors(self) -> tuple[ConstructorInfo, ...]:
        return tuple(c for c in self.constructors if c.marked)

    @property
    def default_constructor(self) -> Optional[ConstructorInfo]:
        return next((c for c in self.constructors if c.is_default), None)


def describe(cls: type) -> TypeDescriptor:
    """Introspect *cls*.

    Raises:
        IllegalComponentError: If *cls* is not a class, or the annotations
            of a marked member cannot be evaluated.

    Examples:
        >>> class Plain:
        ...     pass
        >>> descriptor = describe(Plain)
        >>> descriptor.ancestors == (Plain,)
        True
        >>> descriptor.default_constructor.name
        '__init__'
    """
    if not inspect.isclass(cls):
        raise IllegalComponentError(cls, "not a class")

    ancestors = [klass for klass in cls.__mro__ if klass is not object]
    return TypeDescriptor(
        type=cls,
        is_abstract=_is_abstract(cls),
        constructors=_constructors(cls),
        chain=tuple(_describe_class(cls, klass) for klass in ancestors),
    )


def _is_abstract(cls: type) -> bool:
    return inspect.isabstract(cls) or bool(getattr(cls, "_is_protocol", False))


def _constructors(cls: type) -> tuple[ConstructorInfo, ...]:
    init_owner = next(k for k in cls.__mro__ if "__init__" in vars(k))
    init = vars(init_owner)["__init__"]
    marked = is_marked(init)
    constructors = [
        ConstructorInfo(
            "__init__",
            init_owner,
            _parameters(cls, init, skip_first=True, evaluate=marked),
            marked,
        )
    ]

    for name, owner, member in _effective_members(cls):
        if isinstance(member, classmethod) and is_marked(member):
            constructors.append(
                ConstructorInfo(
                    name,
                    owner,
                    _parameters(cls, member.__func__, skip_first=True, evaluate=True),
                    True,
                )
            )
    return tuple(constructors)


def _effective_members(cls: type):
    """Yield ``(name, owner, member)`` for every name as the MRO resolves it."""
    seen: set[str] = set()
    for klass in cls.__mro__:
        if klass is object:
            continue
        for name, member in vars(klass).items():
            if name in seen:
                continue
            seen.add(name)
            yield name, klass, member


def _describe_class(component: type, klass: type) -> ClassDescriptor:
    return ClassDescriptor(
        type=klass,
        fields=_fields(component, klass),
        methods=_methods(component, klass),
    )


def _fields(component: type, klass: type) -> tuple[FieldInfo, ...]:
    fields = []
    for name, annotation in _raw_annotations(klass).items():
        if isinstance(annotation, str):
            try:
                annotation = _resolve_annotation(klass, name, annotation)
            except (NameError, AttributeError, SyntaxError, TypeError) as e:
                if not _names_marker(klass, annotation):
                    continue
                raise IllegalComponentError(
                    component,
                    f"cannot evaluate annotation {annotation!r} "
                    f"of field {klass.__name__}.{name}",
                ) from e
        fields.append(
            FieldInfo(
                name=name,
                owner=klass,
                declared_type=_unwrap(annotation),
                marked=is_inject_annotation(annotation),
                mutable=_is_mutable(klass, name, annotation),
            )
        )
    return tuple(fields)


def _raw_annotations(klass: type) -> dict[str, Any]:
    try:
        return dict(inspect.get_annotations(klass))
    except NameError:
        # deferred annotations (3.14+) naming something not defined yet
        import annotationlib

        return dict(
            inspect.get_annotations(klass, format=annotationlib.Format.STRING)
        )


def _module_globals(klass: type) -> dict[str, Any]:
    module = sys.modules.get(klass.__module__)
    return dict(getattr(module, "__dict__", {}))


def _resolve_annotation(klass: type, name: str, annotation: str) -> Any:
    """Evaluate one field's string annotation in the scope of *klass*.

    Fields are resolved one at a time so that an unresolvable annotation
    on one field does not hide the others.
    """
    holder = type(
        klass.__name__,
        (),
        {"__annotations__": {name: annotation}, "__module__": klass.__module__},
    )
    resolved = inspect.get_annotations(
        holder,
        globals=_module_globals(klass),
        locals=dict(vars(klass)),
        eval_str=True,
    )
    return resolved[name]


def _names_marker(klass: type, annotation: str) -> bool:
    """Whether any name in an unresolvable annotation refers to ``Inject``.

    Each name and dotted attribute of the expression is looked up on its
    own, so ``Injected[Missing]`` or an alias of it still counts as marked
    while ``Missing`` alone does not.
    """
    try:
        tree = ast.parse(annotation.strip(), mode="eval")
    except SyntaxError:
        return False
    namespace = {**vars(builtins), **_module_globals(klass), **vars(klass)}
    for node in ast.walk(tree):
        if not isinstance(node, (ast.Name, ast.Attribute)):
            continue
        try:
            target = _lookup(node, namespace)
        except (KeyError, AttributeError):
            continue
        if target is Inject or isinstance(target, Inject):
            return True
        if is_inject_annotation(target):
            return True
    return False


def _lookup(node: ast.expr, namespace: dict[str, Any]) -> Any:
    if isinstance(node, ast.Name):
        return namespace[node.id]
    if isinstance(node, ast.Attribute):
        return getattr(_lookup(node.value, namespace), node.attr)
    raise KeyError(type(node).__name__)


def _is_mutable(klass: type, name: str, annotation: Any) -> bool:
    if _has_qualifier(annotation, (Final, ClassVar)):
        return False
    params = getattr(klass, "__dataclass_params__", None)
    if dataclasses.is_dataclass(klass) and params is not None and params.frozen:
        return False
    attribute = inspect.getattr_static(klass, name, None)
    if isinstance(attribute, property) and attribute.fset is None:
        return False
    return True


def _has_qualifier(annotation: Any, qualifiers: tuple[Any, ...]) -> bool:
    origin = get_origin(annotation)
    if origin is None:
        return annotation in qualifiers
    if origin in qualifiers:
        return True
    if origin is Annotated:
        return _has_qualifier(get_args(annotation)[0], qualifiers)
    return False


def _unwrap(annotation: Any) -> Any:
    """Strip ``Annotated``, ``Final`` and ``ClassVar`` layers."""
    origin = get_origin(annotation)
    if origin is Annotated or origin is Final or origin is ClassVar:
        args = get_args(annotation)
        return _unwrap(args[0]) if args else annotation
    return annotation


def _methods(component: type, klass: type) -> tuple[MethodInfo, ...]:
    methods = []
    for name, member in vars(klass).items():
        if name in _CONSTRUCTOR_NAMES:
            continue
        if isinstance(member, classmethod):
            kind = "class"
        elif isinstance(member, staticmethod):
            kind = "static"
        elif inspect.isfunction(member):
            kind = "instance"
        elif name.startswith("__") and name.endswith("__"):
            continue
        else:
            kind = "attribute"

        marked = kind != "attribute" and is_marked(member)
        parameters: tuple[ParameterInfo, ...] = ()
        type_parameter_count = 0
        if marked:
            func = member.__func__ if kind in ("class", "static") else member
            parameters = _parameters(
                component, func, skip_first=kind != "static", evaluate=True
            )
            type_parameter_count = _type_parameter_count(func, parameters)
        methods.append(
            MethodInfo(name, klass, kind, parameters, marked, type_parameter_count)
        )
    return tuple(methods)


def _parameters(
    component: type,
    func: Callable[..., Any],
    *,
    skip_first: bool,
    evaluate: bool,
) -> tuple[ParameterInfo, ...]:
    try:
        sig = inspect.signature(func, eval_str=evaluate)
    except (ValueError, TypeError) as e:
        if evaluate:
            raise IllegalComponentError(
                component,
                f"cannot read the signature of {func.__qualname__}: {e}",
            ) from e
        # builtin slot wrappers without signature metadata take no arguments
        return ()
    except Exception as e:
        raise IllegalComponentError(
            component,
            f"cannot evaluate annotations of {func.__qualname__}: {e}",
        ) from e

    params = list(sig.parameters.values())
    if skip_first and params and params[0].kind in _REQUIRED_KINDS[:2]:
        params = params[1:]
    return tuple(
        ParameterInfo(
            name=p.name,
            declared_type=(
                None if p.annotation is inspect.Parameter.empty else _unwrap(p.annotation)
            ),
            kind=p.kind,
            has_default=p.default is not inspect.Parameter.empty,
        )
        for p in params
    )


def _type_parameter_count(
    func: Callable[..., Any], parameters: tuple[ParameterInfo, ...]
) -> int:
    declared = set(getattr(func, "__type_params__", ()))
    for parameter in parameters:
        declared |= _type_variables(parameter.declared_type)
    return len(declared)


def _type_variables(annotation: Any) -> set[Any]:
    if isinstance(annotation, (TypeVar, ParamSpec)):
        return {annotation}
    found: set[Any] = set()
    for arg in get_args(annotation):
        found |= _type_variables(arg)
    return found
