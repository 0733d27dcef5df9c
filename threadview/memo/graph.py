"""
Derived-Value Graph Introspection

Builds a networkx view of how selectors feed each other, for diagnostics.

FENCE POST:
===========
This is a READ-ONLY description of the graph. Evaluation never consults it:
there is no dependency discovery, no topological scheduling, and no
runtime cycle detection.
"""

from __future__ import annotations
from typing import Iterable, List, Set

import networkx as nx

from .cell import InputSelector, Selector


def _node_name(input_selector: InputSelector) -> str:
    if isinstance(input_selector, Selector):
        return input_selector.name
    return getattr(input_selector, '__name__', repr(input_selector))


def build_dependency_graph(selectors: Iterable[InputSelector]) -> nx.DiGraph:
    """
    Graph of selector names with edges input -> dependent.

    Walks the dependencies of every given selector transitively. Memoized
    nodes carry memoized=True; plain projections carry memoized=False.
    """
    graph = nx.DiGraph()
    seen: Set[int] = set()
    pending: List[InputSelector] = list(selectors)

    while pending:
        current = pending.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))

        name = _node_name(current)
        is_memoized = isinstance(current, Selector)
        graph.add_node(name, memoized=is_memoized)

        if is_memoized:
            for dependency in current.dependencies:
                dependency_name = _node_name(dependency)
                if dependency_name not in graph:
                    graph.add_node(
                        dependency_name,
                        memoized=isinstance(dependency, Selector)
                    )
                graph.add_edge(dependency_name, name)
                pending.append(dependency)

    return graph


def upstream_of(graph: nx.DiGraph, name: str) -> Set[str]:
    """Every node a derived value (transitively) depends on."""
    if name not in graph:
        return set()
    return set(nx.ancestors(graph, name))
