# Copyright (c) 2025.
# This file is part of FG-JIT, released under the MIT License.
"""
Nonlinear factor graph for FG-JIT.

The FactorGraph stores:
    - Variables (nodes, with a type that selects their manifold)
    - Factors (residual terms over an ordered tuple of variables)
    - Registered residual functions (by factor type)

and exposes the two operations the Levenberg-Marquardt loop consumes:

error(values)
    Total cost ``0.5 * Σ_f ||r_f(values)||²``. Residual functions apply their
    own weighting (see `slam.measurements._apply_weight`), so this is the
    whitened squared error.

linearize(values, ordering)
    A `linear.GaussianFactorGraph` with one `JacobianFactor` per factor.
    Each Jacobian is taken with respect to the *tangent increment* of its
    variables, by differentiating

        δ ↦ r_f(retract(x_1, δ_1), ..., retract(x_k, δ_k))

    at δ = 0 with ``jax.jacfwd``. For Euclidean variables that is the usual
    ``dr/dx``; for SE(3) poses it is the Jacobian in the retraction chart, so
    the solved step can be applied with `core.values.Values.retract`.
    The right-hand side is ``b = -r``, making the linear error
    ``0.5 ||A δ − b||²`` the first-order model of ``error``.

Compilation
-----------
``build_residual``, ``build_objective`` and ``build_linearization`` return
``jax.jit``-compiled functions of the value dict ``{NodeId: array}`` that
close over the current factors and residual functions. ``error`` and
``linearize`` compile them on first use and reuse them for every later
call; adding a factor or registering a residual drops the compiled copies.

Notes
-----
The graph is a plain Python object that is assembled once and then treated
as fixed for an optimization run; every numerical evaluation goes through
JAX.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

import jax
import jax.numpy as jnp

from fg_jit.linear.gaussian_factor_graph import GaussianFactorGraph, JacobianFactor
from fg_jit.slam.manifold import get_manifold_for_var_type, retract_block
from .ordering import Ordering
from .types import NodeId, FactorId, Variable, Factor
from .values import Values


# Type aliases for clarity
ResidualFn = Callable[[jnp.ndarray, Dict[str, jnp.ndarray]], jnp.ndarray]
ValueDict = Dict[NodeId, jnp.ndarray]


def _split_points(xs: Sequence[jnp.ndarray]) -> List[int]:
    splits: List[int] = []
    for x in xs[:-1]:
        splits.append((splits[-1] if splits else 0) + int(x.shape[0]))
    return splits


def _linearize_residual(
    fn: ResidualFn,
    params: Dict[str, Any],
    manifolds: Sequence[str],
    xs: Sequence[jnp.ndarray],
) -> Tuple[jnp.ndarray, Tuple[jnp.ndarray, ...]]:
    """Residual and per-variable Jacobian blocks at δ = 0."""
    splits = _split_points(xs)

    def local(delta: jnp.ndarray) -> jnp.ndarray:
        parts = jnp.split(delta, splits)
        stacked = jnp.concatenate(
            [retract_block(m, x, d) for m, x, d in zip(manifolds, xs, parts)]
        )
        return jnp.reshape(fn(stacked, params), (-1,))

    zero = jnp.zeros(sum(int(x.shape[0]) for x in xs), dtype=jnp.result_type(float, *xs))
    r = local(zero)
    J = jax.jacfwd(local)(zero)
    return r, tuple(jnp.split(J, splits, axis=1))


@dataclass
class FactorGraph:
    """
    Nonlinear factor graph.

    - variables: mapping from NodeId -> Variable
    - factors: mapping from FactorId -> Factor
    - residual_fns: mapping factor.type -> callable that computes residuals
    """
    variables: Dict[NodeId, Variable] = field(default_factory=dict)
    factors: Dict[FactorId, Factor] = field(default_factory=dict)
    residual_fns: Dict[str, ResidualFn] = field(default_factory=dict)
    _compiled: Dict[Any, Callable] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def add_variable(self, var: Variable) -> None:
        if var.id in self.variables:
            raise ValueError(f"Variable {var.id} already exists")
        self.variables[var.id] = var

    def add_factor(self, factor: Factor) -> None:
        if factor.id in self.factors:
            raise ValueError(f"Factor {factor.id} already exists")
        missing = [nid for nid in factor.var_ids if nid not in self.variables]
        if missing:
            raise ValueError(f"Factor {factor.id} references unknown variables {missing}")
        self.factors[factor.id] = factor
        self._compiled.clear()

    def register_residual(self, factor_type: str, fn: ResidualFn) -> None:
        self.residual_fns[factor_type] = fn
        self._compiled.clear()

    # --- Convenience builders ---

    def new_variable(self, var_type: str, value) -> NodeId:
        """Add a variable with the next free NodeId and return that id."""
        nid = NodeId(len(self.variables))
        self.add_variable(Variable(id=nid, type=var_type, value=jnp.atleast_1d(jnp.asarray(value))))
        return nid

    def new_factor(self, f_type: str, var_ids, params: Dict) -> FactorId:
        """Add a factor with the next free FactorId and return that id."""
        fid = FactorId(len(self.factors))
        node_ids = tuple(NodeId(int(vid)) for vid in var_ids)
        self.add_factor(Factor(id=fid, type=f_type, var_ids=node_ids, params=params))
        return fid

    # --- Values ---

    def initial_values(self) -> Values:
        data = {nid: jnp.asarray(var.value) for nid, var in self.variables.items()}
        manifolds = {
            nid: get_manifold_for_var_type(var.type) for nid, var in self.variables.items()
        }
        return Values(data, manifolds)

    # --- Compiled builders ---

    def _residual_fn(self, factor: Factor) -> ResidualFn:
        fn = self.residual_fns.get(factor.type, None)
        if fn is None:
            raise ValueError(f"No residual fn registered for factor type '{factor.type}'")
        return fn

    def _cached(self, key, build: Callable[[], Callable]) -> Callable:
        fn = self._compiled.get(key)
        if fn is None:
            fn = build()
            self._compiled[key] = fn
        return fn

    def build_residual(self) -> Callable[[ValueDict], jnp.ndarray]:
        """
        Returns a JIT-compiled function r(values) -> stacked residual vector
        over all factors, in insertion order.
        """
        factors = list(self.factors.values())
        fns = [self._residual_fn(f) for f in factors]

        def residual(data: ValueDict) -> jnp.ndarray:
            res_list = []
            for factor, fn in zip(factors, fns):
                stacked = jnp.concatenate([data[nid] for nid in factor.var_ids])
                res_list.append(jnp.reshape(fn(stacked, factor.params), (-1,)))

            if not res_list:
                return jnp.zeros((0,))

            return jnp.concatenate(res_list)

        return jax.jit(residual)

    def build_objective(self) -> Callable[[ValueDict], jnp.ndarray]:
        """
        Returns a JIT-compiled function f(values) -> 0.5 * ||r(values)||².
        """
        residual = self.build_residual()

        def objective(data: ValueDict) -> jnp.ndarray:
            r = residual(data)
            return 0.5 * jnp.sum(r ** 2)

        return jax.jit(objective)

    def build_linearization(
        self, manifolds: Mapping[NodeId, str]
    ) -> Callable[[ValueDict], List[Tuple[jnp.ndarray, Tuple[jnp.ndarray, ...]]]]:
        """
        Returns a JIT-compiled function mapping values to one
        ``(r, Jacobian blocks)`` pair per factor, in insertion order.
        ``manifolds`` selects the retraction of every variable.
        """
        factors = list(self.factors.values())
        fns = [self._residual_fn(f) for f in factors]

        def linearize_all(data: ValueDict):
            return [
                _linearize_residual(
                    fn,
                    factor.params,
                    [manifolds[nid] for nid in factor.var_ids],
                    [data[nid] for nid in factor.var_ids],
                )
                for factor, fn in zip(factors, fns)
            ]

        return jax.jit(linearize_all)

    # --- Objective ---

    def residual(self, values: Values) -> jnp.ndarray:
        """Stacked residual vector over all factors, in insertion order."""
        return self._cached("residual", self.build_residual)(dict(values))

    def error(self, values: Values) -> float:
        return float(self._cached("objective", self.build_objective)(dict(values)))

    # --- Linearization ---

    def linearize(self, values: Values, ordering: Ordering) -> GaussianFactorGraph:
        manifolds = {nid: values.manifold(nid) for nid in values}
        key = ("linearize", tuple(sorted(manifolds.items())))
        linearize_all = self._cached(key, lambda: self.build_linearization(manifolds))

        linear = []
        for factor, (r, blocks) in zip(self.factors.values(), linearize_all(dict(values))):
            keys = tuple(ordering.index(nid) for nid in factor.var_ids)
            linear.append(JacobianFactor(keys=keys, blocks=blocks, b=-r))
        return GaussianFactorGraph(linear)
