"""Dependency graph validation.

The graph is checked as a whole, before any component is built: every
binding is a traversal root, and a depth-first walk with an explicit path
stack reports the first missing dependency or cycle it meets.
"""

import logging
from typing import Any, Iterable, Mapping

from contextum.exceptions import CyclicDependencyError, DependencyNotFoundError, type_name
from contextum.providers import ComponentProvider

__all__ = ["DependencyGraph", "check_dependencies"]

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Adjacency view of a set of bindings.

    Each bound type maps to the dependency types its provider declares, in
    the provider's lookup order.

    Examples:
        >>> graph = DependencyGraph({"app": ["db"], "db": []})
        >>> graph.validate()
        >>> graph.dependencies_of("app")
        ('db',)
    """

    def __init__(self, edges: Mapping[Any, Iterable[Any]]) -> None:
        self._edges: dict[Any, tuple[Any, ...]] = {
            component: tuple(dependencies) for component, dependencies in edges.items()
        }

    @classmethod
    def from_providers(
        cls, providers: Mapping[Any, ComponentProvider]
    ) -> "DependencyGraph":
        return cls(
            {component: provider.dependencies for component, provider in providers.items()}
        )

    def __contains__(self, component: Any) -> bool:
        return component in self._edges

    def dependencies_of(self, component: Any) -> tuple[Any, ...]:
        return self._edges[component]

    def validate(self) -> None:
        """Walk every binding depth-first.

        Raises:
            DependencyNotFoundError: A binding declares a dependency that is
                not bound. Carries the requesting and the missing type.
            CyclicDependencyError: A dependency chain comes back to a type
                already on the current path. Carries exactly the types on
                the cycle.
        """
        verified: set[Any] = set()
        for component in self._edges:
            self._visit(component, [component], verified)
        logger.debug("Dependency graph of %d bindings is valid", len(self._edges))

    def _visit(self, component: Any, path: list[Any], verified: set[Any]) -> None:
        if component in verified:
            return
        for dependency in self._edges[component]:
            if dependency not in self._edges:
                logger.debug(
                    "%s depends on unbound %s",
                    type_name(component),
                    type_name(dependency),
                )
                raise DependencyNotFoundError(component, dependency)
            if dependency in path:
                cycle = path[path.index(dependency):] + [dependency]
                logger.debug(
                    "Cycle found: %s", " -> ".join(type_name(c) for c in cycle)
                )
                raise CyclicDependencyError(cycle)
            path.append(dependency)
            self._visit(dependency, path, verified)
            path.pop()
        # a fully walked node cannot reach a violation any more
        verified.add(component)


def check_dependencies(providers: Mapping[Any, ComponentProvider]) -> None:
    """Validate the dependency graph formed by *providers*.

    See :meth:`DependencyGraph.validate` for the errors raised.
    """
    DependencyGraph.from_providers(providers).validate()
