# Copyright (c) 2025.
# This file is part of FG-JIT, released under the MIT License.
"""
Linear (Gaussian) factor graphs.

A `JacobianFactor` is one whitened linear least-squares term

    e(δ) = 0.5 * || Σ_j A_j δ_j − b ||²

whose keys are *ordering positions*, not NodeIds. A nonlinear graph
linearized at an estimate (`core.factor_graph.FactorGraph.linearize`) is a
`GaussianFactorGraph` of such terms.

`GaussianFactorGraph` is immutable: ``push_back`` and ``damped`` return new
graphs sharing the original factors, so the Levenberg-Marquardt loop can
build a differently damped copy for every trial from one linearization.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Sequence, Tuple

import jax.numpy as jnp

from fg_jit.core.values import VectorValues


@dataclass(frozen=True, eq=False)
class JacobianFactor:
    keys: Tuple[int, ...]
    blocks: Tuple[jnp.ndarray, ...]
    b: jnp.ndarray

    def __post_init__(self) -> None:
        if len(self.keys) != len(self.blocks):
            raise ValueError("JacobianFactor needs exactly one block per key")
        b = jnp.atleast_1d(jnp.asarray(self.b))
        blocks = tuple(jnp.atleast_2d(jnp.asarray(A)) for A in self.blocks)
        for A in blocks:
            if A.shape[0] != b.shape[0]:
                raise ValueError(
                    f"Block with {A.shape[0]} rows does not match b with {b.shape[0]} rows"
                )
        object.__setattr__(self, "keys", tuple(int(k) for k in self.keys))
        object.__setattr__(self, "blocks", blocks)
        object.__setattr__(self, "b", b)

    @staticmethod
    def isotropic_prior(key: int, dim: int, sigma: float) -> "JacobianFactor":
        """Unary prior δ_key ~ N(0, sigma² I), in whitened form."""
        return JacobianFactor(
            keys=(key,),
            blocks=(jnp.eye(dim) / sigma,),
            b=jnp.zeros(dim),
        )

    @property
    def rows(self) -> int:
        return int(self.b.shape[0])

    def residual(self, delta: VectorValues) -> jnp.ndarray:
        r = -self.b
        for key, A in zip(self.keys, self.blocks):
            r = r + A @ delta[key]
        return r

    def error(self, delta: VectorValues) -> float:
        r = self.residual(delta)
        return 0.5 * float(jnp.dot(r, r))

    def is_finite(self) -> bool:
        ok = bool(jnp.all(jnp.isfinite(self.b)))
        for A in self.blocks:
            ok = ok and bool(jnp.all(jnp.isfinite(A)))
        return ok


class GaussianFactorGraph:
    """Immutable collection of JacobianFactors."""

    def __init__(self, factors: Sequence[JacobianFactor] = ()) -> None:
        self._factors: Tuple[JacobianFactor, ...] = tuple(factors)

    def __iter__(self) -> Iterator[JacobianFactor]:
        return iter(self._factors)

    def __len__(self) -> int:
        return len(self._factors)

    def __getitem__(self, i: int) -> JacobianFactor:
        return self._factors[i]

    def __repr__(self) -> str:
        return f"GaussianFactorGraph({len(self._factors)} factors)"

    def push_back(self, *factors: JacobianFactor) -> "GaussianFactorGraph":
        return GaussianFactorGraph(self._factors + tuple(factors))

    def damped(self, dims: Sequence[int], lambda_: float) -> "GaussianFactorGraph":
        """
        Copy of this graph plus one isotropic zero-mean prior per variable.

        The prior standard deviation is ``1 / sqrt(lambda_)``, which adds
        ``lambda_ * I`` to the information matrix.
        """
        sigma = 1.0 / jnp.sqrt(lambda_)
        priors = [
            JacobianFactor.isotropic_prior(j, dim, sigma)
            for j, dim in enumerate(dims)
        ]
        return self.push_back(*priors)

    def error(self, delta: VectorValues) -> float:
        return sum(f.error(delta) for f in self._factors)

    def is_finite(self) -> bool:
        return all(f.is_finite() for f in self._factors)

    def to_dense(self, dims: Sequence[int]) -> Tuple[jnp.ndarray, jnp.ndarray]:
        """
        Stack every factor into one dense whitened system (A, b).

        Columns follow ordering positions: variable ``j`` occupies
        ``dims[j]`` columns starting at ``sum(dims[:j])``.
        """
        offsets = [0]
        for d in dims:
            offsets.append(offsets[-1] + int(d))
        n = offsets[-1]

        A_rows = []
        b_rows = []
        for f in self._factors:
            A_f = jnp.zeros((f.rows, n))
            for key, block in zip(f.keys, f.blocks):
                if key >= len(dims) or block.shape[1] != dims[key]:
                    raise ValueError(
                        f"Block for key {key} has shape {block.shape}, inconsistent with dims"
                    )
                A_f = A_f.at[:, offsets[key]:offsets[key + 1]].add(block)
            A_rows.append(A_f)
            b_rows.append(f.b)

        if not A_rows:
            return jnp.zeros((0, n)), jnp.zeros((0,))
        return jnp.concatenate(A_rows, axis=0), jnp.concatenate(b_rows)
