from __future__ import annotations

import jax.numpy as jnp
import pytest

from fg_jit.core.errors import ConfigurationError
from fg_jit.core.values import VectorValues
from fg_jit.linear.elimination import (
    Failed,
    Indefinite,
    Solved,
    damped_solve,
    resolve_solver,
)
from fg_jit.linear.gaussian_factor_graph import GaussianFactorGraph, JacobianFactor

STRATEGIES = [
    ("cholesky", "multifrontal"),
    ("cholesky", "sequential"),
    ("qr", "multifrontal"),
    ("qr", "sequential"),
]


def _small_system():
    """
    Variables: x0 in R^2, x1 in R^1, x2 in R^2 (ordering positions 0, 1, 2).

    Factors:
      - unary on x0
      - binary x0 - x1
      - binary x1 - x2
      - unary on x2
    """
    dims = (2, 1, 2)
    factors = [
        JacobianFactor((0,), (jnp.array([[2.0, 0.0], [0.5, 1.0]]),), jnp.array([1.0, -1.0])),
        JacobianFactor(
            (0, 1),
            (jnp.array([[1.0, 0.3]]), jnp.array([[-1.0]])),
            jnp.array([0.5]),
        ),
        JacobianFactor(
            (1, 2),
            (jnp.array([[1.0], [0.0]]), jnp.array([[-1.0, 0.0], [0.2, -1.0]])),
            jnp.array([0.2, 0.1]),
        ),
        JacobianFactor((2,), (jnp.eye(2) * 3.0,), jnp.array([0.0, 0.6])),
    ]
    return GaussianFactorGraph(factors), dims


@pytest.mark.parametrize("factorization,elimination", STRATEGIES)
def test_strategies_match_dense_least_squares(factorization, elimination):
    system, dims = _small_system()
    A, b = system.to_dense(dims)
    expected = jnp.linalg.lstsq(A, b)[0]

    result = damped_solve(system, dims, factorization, elimination)
    assert isinstance(result, Solved)
    assert result.delta.dims == dims
    assert jnp.allclose(result.delta.vector, expected, atol=1e-9)


@pytest.mark.parametrize("factorization,elimination", STRATEGIES)
def test_damped_strategies_agree(factorization, elimination):
    system, dims = _small_system()
    damped = system.damped(dims, 0.5)
    reference = damped_solve(damped, dims, "qr", "multifrontal")
    result = damped_solve(damped, dims, factorization, elimination)
    assert isinstance(result, Solved)
    assert jnp.allclose(result.delta.vector, reference.delta.vector, atol=1e-9)


def test_damped_copy_leaves_original_untouched():
    system, dims = _small_system()
    damped = system.damped(dims, 4.0)

    assert len(system) == 4
    assert len(damped) == 4 + len(dims)
    # Each prior is I / sigma with sigma = 1/sqrt(lambda) = 0.5.
    prior = damped[4]
    assert prior.keys == (0,)
    assert jnp.allclose(prior.blocks[0], 2.0 * jnp.eye(2))
    assert jnp.allclose(prior.b, jnp.zeros(2))


def test_larger_lambda_gives_smaller_step():
    system, dims = _small_system()
    norms = []
    for lam in (1e-6, 1.0, 1e6):
        result = damped_solve(system.damped(dims, lam), dims)
        norms.append(result.delta.norm())
    assert norms[0] > norms[1] > norms[2]
    assert norms[2] < 1e-4


@pytest.mark.parametrize("factorization,elimination", STRATEGIES)
def test_rank_deficient_system_is_indefinite(factorization, elimination):
    """x1 never appears in any factor, so the undamped system is singular."""
    dims = (1, 1)
    system = GaussianFactorGraph(
        [JacobianFactor((0,), (jnp.array([[1.0]]),), jnp.array([1.0]))]
    )
    result = damped_solve(system, dims, factorization, elimination)
    assert isinstance(result, Indefinite)

    # Damping makes it solvable again.
    result = damped_solve(system.damped(dims, 1e-3), dims, factorization, elimination)
    assert isinstance(result, Solved)
    assert float(result.delta[1][0]) == pytest.approx(0.0)


def test_non_finite_system_fails():
    dims = (1,)
    system = GaussianFactorGraph(
        [JacobianFactor((0,), (jnp.array([[jnp.nan]]),), jnp.array([1.0]))]
    )
    result = damped_solve(system, dims)
    assert isinstance(result, Failed)


def test_inconsistent_dims_fail():
    system, _ = _small_system()
    result = damped_solve(system, (2, 2, 2))
    assert isinstance(result, Failed)


def test_unknown_selectors_raise():
    with pytest.raises(ConfigurationError):
        resolve_solver("lu", "multifrontal")
    with pytest.raises(ConfigurationError):
        resolve_solver("cholesky", "frontal")


def test_factor_error_matches_dense():
    system, dims = _small_system()
    delta = VectorValues(jnp.array([0.1, -0.2, 0.3, 0.0, 1.0]), dims)
    A, b = system.to_dense(dims)
    r = A @ delta.vector - b
    assert system.error(delta) == pytest.approx(0.5 * float(r @ r))
