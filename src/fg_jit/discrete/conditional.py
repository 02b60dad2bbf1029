# Copyright (c) 2025.
# This file is part of FG-JIT, released under the MIT License.
"""
Discrete conditional probability tables.

A `DiscreteConditional` is P(key | parents) stored as a JAX array of shape
``(*parent_cardinalities, key.cardinality)``; indexing it with the parent
values gives the distribution row over ``key``. Conditionals are frozen
once built.

Assignments are plain dicts ``{variable id: int}``. The ``*_in_place``
methods write the conditional's own variable into such a dict and expect
every parent to be present already; that is what makes ancestral traversal
in `discrete.bayes_net.DiscreteBayesNet` work.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Hashable, MutableMapping, Mapping, Tuple

import jax
import jax.numpy as jnp

from .signature import DiscreteKey, Signature

Assignment = Dict[Hashable, int]


@dataclass(frozen=True, eq=False)
class DiscreteConditional:
    key: DiscreteKey
    parents: Tuple[DiscreteKey, ...]
    table: jnp.ndarray

    @staticmethod
    def from_signature(signature: Signature) -> "DiscreteConditional":
        return DiscreteConditional(
            key=signature.key,
            parents=signature.parents,
            table=signature.cpt(),
        )

    def keys(self) -> Tuple[Hashable, ...]:
        return (self.key.id,) + tuple(p.id for p in self.parents)

    @staticmethod
    def _value(values: Mapping, var: DiscreteKey) -> int:
        if var.id not in values:
            raise KeyError(f"Assignment has no value for variable {var.id!r}")
        v = int(values[var.id])
        if not 0 <= v < var.cardinality:
            raise ValueError(
                f"Value {v} out of range for variable {var.id!r} with cardinality {var.cardinality}"
            )
        return v

    def distribution(self, values: Mapping) -> jnp.ndarray:
        """P(key | parents = values) as a vector over the values of key."""
        index = tuple(self._value(values, p) for p in self.parents)
        return self.table[index]

    def __call__(self, values: Mapping) -> float:
        return float(self.distribution(values)[self._value(values, self.key)])

    def argmax(self, values: Mapping) -> int:
        # jnp.argmax returns the first maximum on ties.
        return int(jnp.argmax(self.distribution(values)))

    def solve_in_place(self, values: MutableMapping) -> None:
        values[self.key.id] = self.argmax(values)

    def draw(self, values: Mapping, rng_key: jax.Array) -> jnp.ndarray:
        """
        One draw from the row selected by ``values``.

        Traceable: ``values`` may hold traced integer scalars (as in
        ``DiscreteBayesNet.sample_batch``), so no range checks happen here.
        """
        index = tuple(values[p.id] for p in self.parents)
        row = self.table[index]
        return jax.random.categorical(rng_key, jnp.log(row))

    def sample_in_place(self, values: MutableMapping, rng_key: jax.Array) -> None:
        for p in self.parents:
            self._value(values, p)
        values[self.key.id] = int(self.draw(values, rng_key))
