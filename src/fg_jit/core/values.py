# Copyright (c) 2025.
# This file is part of FG-JIT, released under the MIT License.
"""
Estimates and step vectors.

Values
    An immutable estimate: NodeId -> 1-D JAX array, plus the manifold tag of
    each variable. ``retract`` returns a *new* Values, which is what lets the
    Levenberg-Marquardt loop keep every previous state intact.

VectorValues
    A tangent-space step, stored as one flat vector partitioned into blocks
    by ordering position (block ``j`` belongs to ``ordering[j]``).
"""

from __future__ import annotations

from collections import abc
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Sequence, Tuple

import jax.numpy as jnp

from fg_jit.slam.manifold import EUCLIDEAN, retract_block
from .types import NodeId


@dataclass(frozen=True, eq=False)
class VectorValues:
    vector: jnp.ndarray
    dims: Tuple[int, ...]
    offsets: Tuple[int, ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        vector = jnp.asarray(self.vector)
        dims = tuple(int(d) for d in self.dims)
        offsets = []
        total = 0
        for d in dims:
            offsets.append(total)
            total += d
        if vector.shape != (total,):
            raise ValueError(
                f"Step vector of shape {vector.shape} does not match total dimension {total}"
            )
        object.__setattr__(self, "vector", vector)
        object.__setattr__(self, "dims", dims)
        object.__setattr__(self, "offsets", tuple(offsets))

    @staticmethod
    def zero(dims: Sequence[int]) -> "VectorValues":
        return VectorValues(jnp.zeros(int(sum(dims))), tuple(dims))

    def __len__(self) -> int:
        return len(self.dims)

    def __getitem__(self, j: int) -> jnp.ndarray:
        start = self.offsets[j]
        return self.vector[start:start + self.dims[j]]

    def norm(self) -> float:
        return float(jnp.linalg.norm(self.vector))


class Values(abc.Mapping):
    """
    Immutable mapping NodeId -> value, with per-variable manifold tags.

    Variables without an explicit tag are treated as Euclidean.
    """

    def __init__(
        self,
        data: Mapping[NodeId, jnp.ndarray],
        manifolds: Optional[Mapping[NodeId, str]] = None,
    ) -> None:
        manifolds = dict(manifolds or {})
        self._data = MappingProxyType({k: jnp.atleast_1d(jnp.asarray(v)) for k, v in data.items()})
        self._manifolds = MappingProxyType(
            {k: manifolds.get(k, EUCLIDEAN) for k in self._data}
        )

    def __getitem__(self, nid: NodeId) -> jnp.ndarray:
        return self._data[nid]

    def __iter__(self) -> Iterator[NodeId]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Values({dict(self._data)!r})"

    def at(self, nid: NodeId) -> jnp.ndarray:
        return self._data[nid]

    def manifold(self, nid: NodeId) -> str:
        return self._manifolds[nid]

    def dim(self, nid: NodeId) -> int:
        return int(self._data[nid].shape[0])

    def dims(self, ordering) -> Tuple[int, ...]:
        """Tangent dimension of each variable, in ordering position order."""
        return tuple(self.dim(nid) for nid in ordering)

    def vector(self, ordering) -> jnp.ndarray:
        return jnp.concatenate([self._data[nid] for nid in ordering])

    def retract(self, delta: VectorValues, ordering) -> "Values":
        """
        Apply ``delta`` (laid out by ``ordering``) and return new Values.

        Variables not covered by the ordering are carried over unchanged.
        """
        if len(delta) != len(ordering):
            raise ValueError(
                f"Step has {len(delta)} blocks but ordering has {len(ordering)} variables"
            )
        updated: Dict[NodeId, jnp.ndarray] = dict(self._data)
        for j, nid in enumerate(ordering):
            updated[nid] = retract_block(self._manifolds[nid], self._data[nid], delta[j])
        return Values(updated, self._manifolds)
