# Copyright (c) 2025.
# This file is part of FG-JIT, released under the MIT License.
"""
Declarative description of a discrete conditional P(key | parents).

A Signature names the variable, its parents and a probability table, and
is turned into an immutable `discrete.conditional.DiscreteConditional` by
``DiscreteConditional.from_signature``.

Table formats
-------------
Nested rows::

    Signature(B, (A,), [[0.9, 0.1], [0.2, 0.8]])

Ratio string, one whitespace-separated row per parent assignment and one
``/``-separated ratio per value of ``key``::

    Signature(B, (A,), "9/1 2/8")

Rows are normalized independently, so ratios need not sum to one. Rows are
enumerated row-major over ``parents``: the *last* parent varies fastest.
For parents ``(A, C)`` with two values each the rows are
``A=0,C=0``, ``A=0,C=1``, ``A=1,C=0``, ``A=1,C=1``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Hashable, List, NamedTuple, Sequence, Tuple, Union

import jax.numpy as jnp

TableSpec = Union[str, Sequence[Sequence[float]]]


class DiscreteKey(NamedTuple):
    id: Hashable
    cardinality: int


def parse_table(text: str) -> List[List[float]]:
    """Parse a ratio string such as ``"99/1 80/20"`` into rows."""
    rows = []
    for token in text.split():
        try:
            rows.append([float(entry) for entry in token.split("/")])
        except ValueError as e:
            raise ValueError(f"Cannot parse table row '{token}' in '{text}'") from e
    return rows


@dataclass(frozen=True)
class Signature:
    key: DiscreteKey
    parents: Tuple[DiscreteKey, ...] = ()
    table: TableSpec = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "parents", tuple(self.parents))

    def given(self, *parents: DiscreteKey) -> "Signature":
        return replace(self, parents=self.parents + tuple(parents))

    def with_table(self, table: TableSpec) -> "Signature":
        return replace(self, table=table)

    @property
    def parent_cardinalities(self) -> Tuple[int, ...]:
        return tuple(int(p.cardinality) for p in self.parents)

    def rows(self) -> List[List[float]]:
        """The table as validated, unnormalized rows."""
        if self.key.cardinality < 1:
            raise ValueError(f"Variable {self.key.id!r} must have at least one value")

        rows = parse_table(self.table) if isinstance(self.table, str) else [
            [float(v) for v in row] for row in self.table
        ]

        expected = math.prod(self.parent_cardinalities)
        if len(rows) != expected:
            raise ValueError(
                f"Table for {self.key.id!r} has {len(rows)} rows, expected {expected} "
                f"(one per parent assignment)"
            )
        for i, row in enumerate(rows):
            if len(row) != self.key.cardinality:
                raise ValueError(
                    f"Row {i} for {self.key.id!r} has {len(row)} entries, "
                    f"expected {self.key.cardinality}"
                )
            if any(v < 0.0 for v in row):
                raise ValueError(f"Row {i} for {self.key.id!r} has a negative entry")
            if sum(row) <= 0.0:
                raise ValueError(f"Row {i} for {self.key.id!r} sums to zero")
        return rows

    def cpt(self) -> jnp.ndarray:
        """Normalized table of shape ``(*parent_cardinalities, cardinality)``."""
        table = jnp.asarray(self.rows(), dtype=float)
        table = table / jnp.sum(table, axis=1, keepdims=True)
        return jnp.reshape(table, self.parent_cardinalities + (int(self.key.cardinality),))
