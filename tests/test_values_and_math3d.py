from __future__ import annotations

import jax
import jax.numpy as jnp
import pytest

from fg_jit.core.math3d import (
    compose_pose_se3,
    relative_pose_se3,
    se3_identity,
    se3_retract_left,
    so3_exp,
    so3_log,
)
from fg_jit.core.ordering import Ordering
from fg_jit.core.types import NodeId
from fg_jit.core.values import Values, VectorValues


@pytest.mark.parametrize(
    "w",
    [
        [0.1, -0.2, 0.3],
        [1e-8, 0.0, -2e-8],
        [0.0, 0.0, 3.0],
    ],
)
def test_so3_exp_log_roundtrip(w):
    w = jnp.array(w)
    R = so3_exp(w)
    assert jnp.allclose(R.T @ R, jnp.eye(3), atol=1e-12)
    assert jnp.allclose(so3_log(R), w, atol=1e-9)


def test_so3_exp_jacobian_at_zero_is_finite():
    J = jax.jacfwd(so3_exp)(jnp.zeros(3))
    assert bool(jnp.all(jnp.isfinite(J)))
    # d/dw_z of exp(hat(w)) at 0 is hat(e_z)
    assert jnp.allclose(J[:, :, 2], jnp.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 0.0]]))


def test_relative_pose_inverts_compose():
    a = jnp.array([0.5, -1.0, 2.0, 0.2, -0.1, 0.4])
    b = jnp.array([1.0, 0.0, 0.3, -0.3, 0.2, 0.1])
    assert jnp.allclose(relative_pose_se3(a, compose_pose_se3(a, b)), b, atol=1e-9)
    assert jnp.allclose(compose_pose_se3(se3_identity(), b), b, atol=1e-12)


def test_se3_retract_left():
    pose = jnp.array([1.0, 2.0, 3.0, 0.1, 0.2, -0.3])
    assert jnp.allclose(se3_retract_left(pose, jnp.zeros(6)), pose, atol=1e-12)

    moved = se3_retract_left(pose, jnp.array([0.5, 0.0, -1.0, 0.0, 0.0, 0.0]))
    assert jnp.allclose(moved, jnp.array([1.5, 2.0, 2.0, 0.1, 0.2, -0.3]), atol=1e-12)

    # A pure rotation about z turns the translation with it.
    turned = se3_retract_left(jnp.array([1.0, 0.0, 0.0, 0.0, 0.0, 0.0]),
                              jnp.array([0.0, 0.0, 0.0, 0.0, 0.0, jnp.pi / 2]))
    assert jnp.allclose(turned[:3], jnp.array([0.0, 1.0, 0.0]), atol=1e-12)
    assert jnp.allclose(turned[3:], jnp.array([0.0, 0.0, jnp.pi / 2]), atol=1e-12)


def test_vector_values_blocks():
    delta = VectorValues(jnp.arange(6.0), (2, 1, 3))
    assert len(delta) == 3
    assert jnp.allclose(delta[1], jnp.array([2.0]))
    assert jnp.allclose(delta[2], jnp.array([3.0, 4.0, 5.0]))
    assert VectorValues.zero((2, 3)).norm() == 0.0

    with pytest.raises(ValueError):
        VectorValues(jnp.zeros(5), (2, 2))


def test_values_retract_returns_new_values():
    a, b = NodeId(0), NodeId(1)
    values = Values(
        {a: jnp.array([1.0, 2.0]), b: jnp.zeros(6)},
        {b: "se3"},
    )
    ordering = Ordering([b, a])
    delta = VectorValues(jnp.array([1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.5, -0.5]), (6, 2))

    moved = values.retract(delta, ordering)

    assert jnp.allclose(moved[a], jnp.array([1.5, 1.5]))
    assert jnp.allclose(moved[b], jnp.array([1.0, 0.0, 0.0, 0.0, 0.0, 0.0]))
    assert moved.manifold(b) == "se3"
    # Original untouched.
    assert jnp.allclose(values[a], jnp.array([1.0, 2.0]))
    assert jnp.allclose(values[b], jnp.zeros(6))

    assert values.dims(ordering) == (6, 2)
    assert dict(values).keys() == {a, b}

    with pytest.raises(ValueError):
        values.retract(VectorValues.zero((2,)), Ordering([a, b]))
