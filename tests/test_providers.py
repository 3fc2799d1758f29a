"""Tests for InjectionProvider and InstanceProvider."""

import unittest
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Annotated, ClassVar, Final, Protocol, TypeVar
from unittest import mock

from contextum.decorators import Inject, Injected, inject
from contextum.exceptions import ConstructionError, IllegalComponentError
from contextum.providers import (
    ConstructorInjection,
    FieldInjection,
    InjectionProvider,
    InstanceProvider,
    MethodInjection,
)

T = TypeVar("T")


class Dependency:
    pass


class Component(ABC):
    pass


class DefaultConstructor:
    pass


class InjectConstructor(Component):
    @inject
    def __init__(self, dependency: Dependency) -> None:
        self.dependency = dependency


class MultipleInjectConstructors(Component):
    @inject
    def __init__(self, dependency: Dependency) -> None:
        self.dependency = dependency

    @inject
    @classmethod
    def create(cls, dependency: Dependency) -> "MultipleInjectConstructors":
        return cls(dependency)


class NoInjectOrDefaultConstructor(Component):
    def __init__(self, whatever: str) -> None:
        self.whatever = whatever


class ClassmethodConstructor(Component):
    def __init__(self, dependency: Dependency, source: str) -> None:
        self.dependency = dependency
        self.source = source

    @classmethod
    @inject
    def create(cls, dependency: Dependency) -> "ClassmethodConstructor":
        return cls(dependency, "create")


class AbstractComponent(Component):
    @inject
    def __init__(self) -> None:
        pass

    @abstractmethod
    def run(self) -> None: ...


class ComponentProtocol(Protocol):
    def run(self) -> None: ...


class UnannotatedConstructor:
    @inject
    def __init__(self, dependency) -> None:  # type: ignore[no-untyped-def]
        self.dependency = dependency


class DefaultedParameter:
    @inject
    def __init__(self, dependency: Dependency, retries: int = 3) -> None:
        self.dependency = dependency
        self.retries = retries


class FailingConstructor:
    def __init__(self) -> None:
        raise RuntimeError("boom")


class WrongReturnConstructor:
    @inject
    @classmethod
    def create(cls) -> "WrongReturnConstructor":
        return "not an instance"  # type: ignore[return-value]


def stub_context(**bindings: object) -> mock.Mock:
    context = mock.Mock()
    lookup = {Dependency: bindings.get("dependency", Dependency())}
    context.get.side_effect = lookup.get
    return context


class TestConstructorInjection(unittest.TestCase):
    def setUp(self) -> None:
        self.dependency = Dependency()
        self.context = stub_context(dependency=self.dependency)

    def test_calls_default_constructor_without_inject_constructor(self) -> None:
        instance = InjectionProvider(DefaultConstructor).get(self.context)
        self.assertIsInstance(instance, DefaultConstructor)

    def test_injects_dependency_via_inject_constructor(self) -> None:
        instance = InjectionProvider(InjectConstructor).get(self.context)
        self.assertIs(instance.dependency, self.dependency)

    def test_includes_constructor_dependencies(self) -> None:
        provider = InjectionProvider(InjectConstructor)
        self.assertEqual(provider.dependencies, [Dependency])

    def test_uses_marked_classmethod_constructor(self) -> None:
        provider = InjectionProvider(ClassmethodConstructor)
        instance = provider.get(self.context)
        self.assertEqual(instance.source, "create")
        self.assertIs(instance.dependency, self.dependency)
        self.assertEqual(provider.constructor.name, "create")

    def test_parameters_with_defaults_are_left_alone(self) -> None:
        provider = InjectionProvider(DefaultedParameter)
        self.assertEqual(provider.dependencies, [Dependency])
        self.assertEqual(provider.get(self.context).retries, 3)

    def test_abstract_component_is_illegal(self) -> None:
        with self.assertRaises(IllegalComponentError):
            InjectionProvider(AbstractComponent)

    def test_protocol_is_illegal(self) -> None:
        with self.assertRaises(IllegalComponentError):
            InjectionProvider(ComponentProtocol)

    def test_non_class_is_illegal(self) -> None:
        with self.assertRaises(IllegalComponentError):
            InjectionProvider(Dependency())  # type: ignore[arg-type]

    def test_multiple_inject_constructors_are_illegal(self) -> None:
        with self.assertRaises(IllegalComponentError) as ctx:
            InjectionProvider(MultipleInjectConstructors)
        self.assertIn("multiple constructors", str(ctx.exception))

    def test_no_inject_or_default_constructor_is_illegal(self) -> None:
        with self.assertRaises(IllegalComponentError) as ctx:
            InjectionProvider(NoInjectOrDefaultConstructor)
        self.assertIs(ctx.exception.component, NoInjectOrDefaultConstructor)

    def test_unannotated_parameter_is_illegal(self) -> None:
        with self.assertRaises(IllegalComponentError) as ctx:
            InjectionProvider(UnannotatedConstructor)
        self.assertIn("'dependency'", str(ctx.exception))


class TestConstructionFailures(unittest.TestCase):
    def test_constructor_exception_is_wrapped(self) -> None:
        provider = InjectionProvider(FailingConstructor)
        with self.assertRaises(ConstructionError) as ctx:
            provider.get(stub_context())
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)
        self.assertIs(ctx.exception.component, FailingConstructor)

    def test_missing_dependency_is_a_construction_error(self) -> None:
        context = mock.Mock()
        context.get.return_value = None
        with self.assertRaises(ConstructionError) as ctx:
            InjectionProvider(InjectConstructor).get(context)
        self.assertIn("Dependency", str(ctx.exception))

    def test_context_failure_is_wrapped(self) -> None:
        context = mock.Mock()
        context.get.side_effect = KeyError("gone")
        with self.assertRaises(ConstructionError) as ctx:
            InjectionProvider(InjectConstructor).get(context)
        self.assertIsInstance(ctx.exception.__cause__, KeyError)

    def test_nested_construction_error_propagates_unchanged(self) -> None:
        nested = ConstructionError(Dependency, "inner failure")
        context = mock.Mock()
        context.get.side_effect = nested
        with self.assertRaises(ConstructionError) as ctx:
            InjectionProvider(InjectConstructor).get(context)
        self.assertIs(ctx.exception, nested)

    def test_constructor_returning_wrong_type_fails(self) -> None:
        with self.assertRaises(ConstructionError):
            InjectionProvider(WrongReturnConstructor).get(stub_context())


class ComponentWithFieldInjection:
    dependency: Annotated[Dependency, Inject]
    name: str = "plain"


class SubclassWithFieldInjection(ComponentWithFieldInjection):
    pass


class ShorthandFieldInjection:
    dependency: Injected[Dependency]


class FinalInjectField:
    dependency: Final[Annotated[Dependency, Inject]]


class ClassVarInjectField:
    dependency: ClassVar[Annotated[Dependency, Inject()]]


@dataclass(frozen=True)
class FrozenInjectField:
    dependency: Annotated[Dependency, Inject] = None  # type: ignore[assignment]


class ReadOnlyPropertyField:
    dependency: Annotated[Dependency, Inject]

    @property
    def dependency(self) -> Dependency:  # type: ignore[no-redef]
        return Dependency()


class SlottedField:
    __slots__ = ()
    dependency: Annotated[Dependency, Inject]


class UnresolvedPlainField:
    cfg: "InjectorCfgMissing"  # type: ignore[name-defined]  # noqa: F821
    dependency: Injected[Dependency]


class TestFieldInjection(unittest.TestCase):
    def setUp(self) -> None:
        self.dependency = Dependency()
        self.context = stub_context(dependency=self.dependency)

    def test_injects_dependency_via_field(self) -> None:
        component = InjectionProvider(ComponentWithFieldInjection).get(self.context)
        self.assertIs(component.dependency, self.dependency)
        self.assertEqual(component.name, "plain")

    def test_injects_dependency_via_superclass_field(self) -> None:
        component = InjectionProvider(SubclassWithFieldInjection).get(self.context)
        self.assertIs(component.dependency, self.dependency)

    def test_shorthand_annotation(self) -> None:
        component = InjectionProvider(ShorthandFieldInjection).get(self.context)
        self.assertIs(component.dependency, self.dependency)

    def test_includes_field_dependencies(self) -> None:
        provider = InjectionProvider(SubclassWithFieldInjection)
        self.assertEqual(provider.dependencies, [Dependency])
        self.assertEqual(
            provider.fields,
            [FieldInjection("dependency", ComponentWithFieldInjection, Dependency)],
        )

    def test_final_field_is_illegal(self) -> None:
        with self.assertRaises(IllegalComponentError):
            InjectionProvider(FinalInjectField)

    def test_classvar_field_is_illegal(self) -> None:
        with self.assertRaises(IllegalComponentError):
            InjectionProvider(ClassVarInjectField)

    def test_frozen_dataclass_field_is_illegal(self) -> None:
        with self.assertRaises(IllegalComponentError):
            InjectionProvider(FrozenInjectField)

    def test_read_only_property_field_is_illegal(self) -> None:
        with self.assertRaises(IllegalComponentError):
            InjectionProvider(ReadOnlyPropertyField)

    def test_unresolved_plain_field_is_ignored(self) -> None:
        provider = InjectionProvider(UnresolvedPlainField)
        self.assertEqual(provider.dependencies, [Dependency])
        component = provider.get(self.context)
        self.assertIs(component.dependency, self.dependency)
        self.assertFalse(hasattr(component, "cfg"))

    def test_unassignable_field_fails_at_construction(self) -> None:
        provider = InjectionProvider(SlottedField)
        with self.assertRaises(ConstructionError) as ctx:
            provider.get(self.context)
        self.assertIsInstance(ctx.exception.__cause__, AttributeError)


class InjectMethodWithNoDependency:
    def __init__(self) -> None:
        self.called = False

    @inject
    def install(self) -> None:
        self.called = True


class InjectMethodWithDependency:
    def __init__(self) -> None:
        self.dependency = None

    @inject
    def install(self, dependency: Dependency) -> None:
        self.dependency = dependency


class SuperClassWithInjectMethod:
    def __init__(self) -> None:
        self.super_called = 0

    @inject
    def install(self) -> None:
        self.super_called += 1


class SubclassWithInjectMethod(SuperClassWithInjectMethod):
    def __init__(self) -> None:
        super().__init__()
        self.sub_called = 0

    @inject
    def install_another(self) -> None:
        self.sub_called = self.super_called + 1


class SubclassOverrideSuperClassWithInject(SuperClassWithInjectMethod):
    @inject
    def install(self) -> None:
        super().install()


class SubclassOverrideSuperClassWithoutInject(SuperClassWithInjectMethod):
    def install(self) -> None:
        super().install()


class GrandchildOfOverrideWithoutInject(SubclassOverrideSuperClassWithoutInject):
    pass


class InjectMethodWithTypeParameter:
    @inject
    def install(self, value: T) -> None:
        self.value = value


class InjectStaticMethod:
    @inject
    @staticmethod
    def install(dependency: Dependency) -> None:
        pass


class FailingInjectMethod:
    @inject
    def install(self) -> None:
        raise ValueError("bad install")


class TestMethodInjection(unittest.TestCase):
    def setUp(self) -> None:
        self.dependency = Dependency()
        self.context = stub_context(dependency=self.dependency)

    def test_calls_inject_method_without_dependencies(self) -> None:
        component = InjectionProvider(InjectMethodWithNoDependency).get(self.context)
        self.assertTrue(component.called)

    def test_injects_dependency_via_inject_method(self) -> None:
        component = InjectionProvider(InjectMethodWithDependency).get(self.context)
        self.assertIs(component.dependency, self.dependency)

    def test_superclass_inject_method_runs_first(self) -> None:
        component = InjectionProvider(SubclassWithInjectMethod).get(self.context)
        self.assertEqual(component.super_called, 1)
        self.assertEqual(component.sub_called, 2)

    def test_methods_are_ordered_ancestor_first(self) -> None:
        provider = InjectionProvider(SubclassWithInjectMethod)
        self.assertEqual(
            [m.name for m in provider.methods], ["install", "install_another"]
        )

    def test_override_with_inject_runs_once(self) -> None:
        component = InjectionProvider(SubclassOverrideSuperClassWithInject).get(
            self.context
        )
        self.assertEqual(component.super_called, 1)

    def test_override_without_inject_does_not_run(self) -> None:
        component = InjectionProvider(SubclassOverrideSuperClassWithoutInject).get(
            self.context
        )
        self.assertEqual(component.super_called, 0)

    def test_override_without_inject_is_inherited(self) -> None:
        component = InjectionProvider(GrandchildOfOverrideWithoutInject).get(
            self.context
        )
        self.assertEqual(component.super_called, 0)

    def test_includes_method_dependencies(self) -> None:
        provider = InjectionProvider(InjectMethodWithDependency)
        self.assertEqual(provider.dependencies, [Dependency])

    def test_method_with_type_parameter_is_illegal(self) -> None:
        with self.assertRaises(IllegalComponentError):
            InjectionProvider(InjectMethodWithTypeParameter)

    def test_static_method_is_illegal(self) -> None:
        with self.assertRaises(IllegalComponentError):
            InjectionProvider(InjectStaticMethod)

    def test_failing_method_is_wrapped(self) -> None:
        with self.assertRaises(ConstructionError) as ctx:
            InjectionProvider(FailingInjectMethod).get(self.context)
        self.assertIsInstance(ctx.exception.__cause__, ValueError)


class Everything:
    second: Injected[Dependency]

    @inject
    def __init__(self, first: Dependency) -> None:
        self.first = first

    @inject
    def install(self, third: Dependency, fourth: Dependency) -> None:
        self.rest = (third, fourth)


class TestInjectionPoints(unittest.TestCase):
    def test_dependencies_are_constructor_then_fields_then_methods(self) -> None:
        provider = InjectionProvider(Everything)
        self.assertEqual(provider.dependencies, [Dependency] * 4)
        kinds = [type(point) for point in provider.injection_points]
        self.assertEqual(
            kinds, [ConstructorInjection, FieldInjection, MethodInjection]
        )

    def test_lookup_order_follows_injection_points(self) -> None:
        context = stub_context()
        InjectionProvider(Everything).get(context)
        self.assertEqual(context.get.call_count, 4)


class TestInstanceProvider(unittest.TestCase):
    def test_returns_same_instance(self) -> None:
        instance = Dependency()
        provider = InstanceProvider(instance)
        self.assertIs(provider.get(mock.Mock()), instance)
        self.assertIs(provider.get(mock.Mock()), instance)

    def test_has_no_dependencies(self) -> None:
        self.assertEqual(InstanceProvider(Dependency()).dependencies, [])


if __name__ == "__main__":
    unittest.main()
