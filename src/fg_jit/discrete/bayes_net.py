# Copyright (c) 2025.
# This file is part of FG-JIT, released under the MIT License.
"""
Discrete Bayes networks.

A `DiscreteBayesNet` is a sequence of `DiscreteConditional`s stored in
**elimination order**: the order in which variables were eliminated when
the net was produced. Each conditional's parents were eliminated *after*
it, so the reverse of the storage order is an ancestral (parents-first)
order. The stored list is therefore named ``elimination_order`` and every
traversal that needs parents first goes through ``ancestral_order()``.

Operations
----------
evaluate(values)
    Joint probability of a full assignment, the product of every
    conditional's table entry.
optimize()
    Most probable assignment. Each conditional is maximized given the
    already-fixed values of its parents, visiting conditionals in
    ancestral order; for a net produced by elimination this greedy pass is
    exact.
sample(rng_key=None)
    One ancestral sample.
sample_batch(rng_key, num_samples)
    Many samples at once, via ``jax.vmap`` over the same traversal.

Build the net once with ``add`` / ``push_back``; afterwards the query
methods only read it and may be called from several threads.
"""

from __future__ import annotations

import secrets
import threading
from typing import Dict, Hashable, Iterable, Iterator, List, Optional

import jax
import jax.numpy as jnp

from .conditional import Assignment, DiscreteConditional
from .signature import Signature


class DiscreteBayesNet:

    def __init__(
        self,
        conditionals: Iterable[DiscreteConditional] = (),
        seed: Optional[int] = None,
    ) -> None:
        self.elimination_order: List[DiscreteConditional] = list(conditionals)
        if seed is None:
            seed = secrets.randbits(31)
        self._rng_key = jax.random.PRNGKey(seed)
        self._rng_lock = threading.Lock()

    def add(self, signature: Signature) -> None:
        self.push_back(DiscreteConditional.from_signature(signature))

    def push_back(self, conditional: DiscreteConditional) -> None:
        self.elimination_order.append(conditional)

    def __len__(self) -> int:
        return len(self.elimination_order)

    def __iter__(self) -> Iterator[DiscreteConditional]:
        return iter(self.elimination_order)

    def ancestral_order(self) -> Iterator[DiscreteConditional]:
        """Conditionals parents-first, i.e. reverse elimination order."""
        return reversed(self.elimination_order)

    def keys(self) -> List[Hashable]:
        seen: Dict[Hashable, None] = {}
        for conditional in self.elimination_order:
            for k in conditional.keys():
                seen.setdefault(k, None)
        return list(seen)

    def evaluate(self, values: Assignment) -> float:
        result = 1.0
        for conditional in self.elimination_order:
            result *= conditional(values)
        return result

    def optimize(self) -> Assignment:
        result: Assignment = {}
        for conditional in self.ancestral_order():
            conditional.solve_in_place(result)
        return result

    def _next_key(self) -> jax.Array:
        with self._rng_lock:
            self._rng_key, subkey = jax.random.split(self._rng_key)
        return subkey

    def _draw_all(self, rng_key: jax.Array) -> Dict[Hashable, jnp.ndarray]:
        values: Dict[Hashable, jnp.ndarray] = {}
        for i, conditional in enumerate(self.ancestral_order()):
            values[conditional.key.id] = conditional.draw(values, jax.random.fold_in(rng_key, i))
        return values

    def sample(self, rng_key: Optional[jax.Array] = None) -> Assignment:
        """
        One joint sample. Without ``rng_key`` a fresh key is split off the
        net's own key, so consecutive calls are independent.
        """
        if rng_key is None:
            rng_key = self._next_key()
        result: Assignment = {}
        for i, conditional in enumerate(self.ancestral_order()):
            conditional.sample_in_place(result, jax.random.fold_in(rng_key, i))
        return result

    def sample_batch(self, rng_key: jax.Array, num_samples: int) -> Dict[Hashable, jnp.ndarray]:
        """
        ``num_samples`` joint samples as ``{variable id: int array (num_samples,)}``.

        Sample ``k`` uses the same per-conditional keys as
        ``sample(jax.random.split(rng_key, num_samples)[k])``.
        """
        if not self.elimination_order:
            return {}
        keys = jax.random.split(rng_key, num_samples)
        return jax.vmap(self._draw_all)(keys)
