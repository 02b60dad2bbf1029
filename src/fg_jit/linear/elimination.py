# Copyright (c) 2025.
# This file is part of FG-JIT, released under the MIT License.
"""
Dense elimination solvers for Gaussian factor graphs.

Two independent choices select a solver:

factorization
    ``"cholesky"``: factor the information matrix ``H = AᵀA``.
    ``"qr"``: Householder QR of the whitened Jacobian ``A`` directly;
    slower but better conditioned.

elimination
    ``"sequential"``: eliminate one variable at a time in ordering
    position order. Each step produces a `GaussianConditional`
    ``R_j δ_j + S_j δ_rest = d_j`` and a reduced system over the remaining
    variables; the resulting `GaussianBayesNet` is solved by
    back-substitution in reverse (parents first) order.
    ``"multifrontal"``: one dense front over the whole system followed by
    triangular solves.

Every solver returns a `SolveResult` rather than raising on numerical
trouble:

    Solved(delta)        the step, as `core.values.VectorValues`
    Indefinite(detail)   a pivot was not strictly positive, a QR diagonal
                         vanished, or the step came out non-finite; callers
                         are expected to damp more and retry
    Failed(detail)       the system itself is malformed (non-finite entries,
                         inconsistent dimensions); callers should give up

Unknown selectors raise `core.errors.ConfigurationError` from
`resolve_solver`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Sequence, Union

import jax.numpy as jnp
from jax.scipy.linalg import solve_triangular

from fg_jit.core.errors import ConfigurationError
from fg_jit.core.values import VectorValues
from .gaussian_factor_graph import GaussianFactorGraph

FACTORIZATIONS = ("cholesky", "qr")
ELIMINATIONS = ("multifrontal", "sequential")

# Relative threshold below which a pivot (Cholesky) or |R_ii| (QR) counts as zero.
_PIVOT_TOL = 1e-12


@dataclass(frozen=True, eq=False)
class Solved:
    delta: VectorValues


@dataclass(frozen=True)
class Indefinite:
    detail: str


@dataclass(frozen=True)
class Failed:
    detail: str


SolveResult = Union[Solved, Indefinite, Failed]
LinearSolver = Callable[[GaussianFactorGraph, Sequence[int]], SolveResult]


class _IndefiniteSystem(Exception):
    """Internal signal, always converted to `Indefinite` before returning."""


@dataclass(frozen=True, eq=False)
class GaussianConditional:
    """
    p(δ_j | δ_{j+1..}) in square-root form: ``R δ_j + S δ_rest = d``.

    ``R`` is upper triangular; ``S`` spans every variable eliminated after
    ``j`` (possibly zero columns).
    """
    key: int
    R: jnp.ndarray
    S: jnp.ndarray
    d: jnp.ndarray

    def solve(self, rest: jnp.ndarray) -> jnp.ndarray:
        return solve_triangular(self.R, self.d - self.S @ rest, lower=False)


class GaussianBayesNet:
    """Gaussian conditionals stored in elimination order."""

    def __init__(self) -> None:
        self.elimination_order: List[GaussianConditional] = []

    def push_back(self, conditional: GaussianConditional) -> None:
        self.elimination_order.append(conditional)

    def back_substitute(self) -> jnp.ndarray:
        """Solve every conditional, last eliminated first."""
        rest = jnp.zeros((0,))
        for conditional in reversed(self.elimination_order):
            delta_j = conditional.solve(rest)
            rest = jnp.concatenate([delta_j, rest])
        return rest


def _check_pivots(diag: jnp.ndarray, what: str) -> None:
    mag = jnp.abs(diag)
    if diag.shape[0] == 0:
        return
    if not bool(jnp.all(jnp.isfinite(diag))):
        raise _IndefiniteSystem(f"non-finite {what}")
    scale = max(1.0, float(jnp.max(mag)))
    if bool(jnp.any(mag <= _PIVOT_TOL * scale)):
        raise _IndefiniteSystem(f"zero or negative {what}")


def _cholesky_upper(H: jnp.ndarray) -> jnp.ndarray:
    # jnp.linalg.cholesky does not raise on indefinite input; it returns NaNs.
    L = jnp.linalg.cholesky(H)
    _check_pivots(jnp.diagonal(L), "Cholesky pivot")
    return L.T


def _multifrontal_cholesky(A: jnp.ndarray, b: jnp.ndarray) -> jnp.ndarray:
    H = A.T @ A
    g = A.T @ b
    R = _cholesky_upper(H)
    y = solve_triangular(R.T, g, lower=True)
    return solve_triangular(R, y, lower=False)


def _multifrontal_qr(A: jnp.ndarray, b: jnp.ndarray) -> jnp.ndarray:
    m, n = A.shape
    if m < n:
        raise _IndefiniteSystem(f"underdetermined system ({m} rows, {n} columns)")
    Q, R = jnp.linalg.qr(A, mode="reduced")
    _check_pivots(jnp.diagonal(R), "QR diagonal")
    return solve_triangular(R, Q.T @ b, lower=False)


def _sequential_cholesky(A: jnp.ndarray, b: jnp.ndarray, dims: Sequence[int]) -> jnp.ndarray:
    H = A.T @ A
    g = A.T @ b
    bayes_net = GaussianBayesNet()
    for j, d in enumerate(dims):
        R = _cholesky_upper(H[:d, :d])
        # Rᵀ S = H_fs and Rᵀ c = g_f, where Rᵀ R = H_ff.
        S = solve_triangular(R.T, H[:d, d:], lower=True)
        c = solve_triangular(R.T, g[:d], lower=True)
        bayes_net.push_back(GaussianConditional(key=j, R=R, S=S, d=c))
        # Schur complement onto the variables not yet eliminated.
        H = H[d:, d:] - S.T @ S
        g = g[d:] - S.T @ c
    return bayes_net.back_substitute()


def _sequential_qr(A: jnp.ndarray, b: jnp.ndarray, dims: Sequence[int]) -> jnp.ndarray:
    Ab = jnp.concatenate([A, b[:, None]], axis=1)
    bayes_net = GaussianBayesNet()
    for j, d in enumerate(dims):
        m = Ab.shape[0]
        if m < d:
            raise _IndefiniteSystem(
                f"variable {j} has {d} columns but only {m} rows remain"
            )
        Q, _ = jnp.linalg.qr(Ab[:, :d], mode="complete")
        T = Q.T @ Ab
        R = jnp.triu(T[:d, :d])
        _check_pivots(jnp.diagonal(R), "QR diagonal")
        bayes_net.push_back(GaussianConditional(key=j, R=R, S=T[:d, d:-1], d=T[:d, -1]))
        Ab = T[d:, d:]
    return bayes_net.back_substitute()


def _make_solver(kernel) -> LinearSolver:
    def solve(system: GaussianFactorGraph, dims: Sequence[int]) -> SolveResult:
        dims = tuple(int(d) for d in dims)
        if not system.is_finite():
            return Failed("linear system contains non-finite entries")
        try:
            A, b = system.to_dense(dims)
        except ValueError as e:
            return Failed(str(e))

        if A.shape[1] == 0:
            return Solved(VectorValues.zero(dims))

        try:
            x = kernel(A, b, dims)
        except _IndefiniteSystem as e:
            return Indefinite(str(e))

        if not bool(jnp.all(jnp.isfinite(x))):
            return Indefinite("non-finite solution")
        return Solved(VectorValues(x, dims))

    return solve


_SOLVERS = {
    ("cholesky", "multifrontal"): _make_solver(lambda A, b, dims: _multifrontal_cholesky(A, b)),
    ("qr", "multifrontal"): _make_solver(lambda A, b, dims: _multifrontal_qr(A, b)),
    ("cholesky", "sequential"): _make_solver(_sequential_cholesky),
    ("qr", "sequential"): _make_solver(_sequential_qr),
}


def resolve_solver(factorization: str, elimination: str) -> LinearSolver:
    """Look up a solver, raising ConfigurationError on an unknown selector."""
    if factorization not in FACTORIZATIONS:
        raise ConfigurationError(
            f"Optimization parameter is invalid: factorization={factorization!r} "
            f"(expected one of {FACTORIZATIONS})"
        )
    if elimination not in ELIMINATIONS:
        raise ConfigurationError(
            f"Optimization parameter is invalid: elimination={elimination!r} "
            f"(expected one of {ELIMINATIONS})"
        )
    return _SOLVERS[(factorization, elimination)]


def damped_solve(
    system: GaussianFactorGraph,
    dims: Sequence[int],
    factorization: str = "cholesky",
    elimination: str = "multifrontal",
) -> SolveResult:
    """Solve ``system`` (already damped by the caller) for the step δ."""
    return resolve_solver(factorization, elimination)(system, dims)

