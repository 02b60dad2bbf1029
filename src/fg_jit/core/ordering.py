# Copyright (c) 2025.
# This file is part of FG-JIT, released under the MIT License.
"""
Variable orderings.

An Ordering fixes the position of every variable in the linear system:
position ``j`` is the key used by `linear.JacobianFactor`, the block index
in `core.values.VectorValues`, and the step at which the variable is
eliminated by the sequential solvers. One ordering is computed per
optimization run and reused by every iteration.
"""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, Set, Tuple

from .types import NodeId


class Ordering:
    """Immutable sequence of NodeIds with O(1) position lookup."""

    def __init__(self, keys: Iterable[NodeId]) -> None:
        self._keys: Tuple[NodeId, ...] = tuple(keys)
        self._index: Dict[NodeId, int] = {k: j for j, k in enumerate(self._keys)}
        if len(self._index) != len(self._keys):
            raise ValueError("Ordering contains duplicate keys")

    @staticmethod
    def natural(fg) -> "Ordering":
        """Sorted NodeIds."""
        return Ordering(sorted(fg.variables.keys()))

    @staticmethod
    def min_degree(fg) -> "Ordering":
        """
        Greedy minimum-degree ordering of the variable adjacency graph.

        At each step the variable with the fewest remaining neighbours is
        eliminated (ties broken by NodeId) and its neighbours are connected
        into a clique, mimicking the fill-in of elimination.
        """
        adjacency: Dict[NodeId, Set[NodeId]] = {nid: set() for nid in fg.variables}
        for factor in fg.factors.values():
            for a in factor.var_ids:
                for b in factor.var_ids:
                    if a != b:
                        adjacency[a].add(b)

        order = []
        while adjacency:
            nid = min(adjacency, key=lambda k: (len(adjacency[k]), k))
            neighbours = adjacency.pop(nid)
            for a in neighbours:
                adjacency[a].discard(nid)
                adjacency[a].update(neighbours - {a})
            order.append(nid)
        return Ordering(order)

    def index(self, nid: NodeId) -> int:
        return self._index[nid]

    def __contains__(self, nid: object) -> bool:
        return nid in self._index

    def __getitem__(self, j: int) -> NodeId:
        return self._keys[j]

    def __iter__(self) -> Iterator[NodeId]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Ordering) and self._keys == other._keys

    def __hash__(self) -> int:
        return hash(self._keys)

    def __repr__(self) -> str:
        return f"Ordering({list(self._keys)!r})"
