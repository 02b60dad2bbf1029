# Copyright (c) 2025.
# This file is part of FG-JIT, released under the MIT License.
"""
SO(3) / SE(3) operations for FG-JIT.

Poses are stored as 6D vectors ``[tx, ty, tz, wx, wy, wz]``: a translation
followed by an axis-angle rotation vector. This module provides the minimal
Lie-group toolkit the optimizer needs to treat such poses as points on a
manifold rather than in R^6:

    • ``so3_exp`` / ``so3_log``            rotation vector <-> rotation matrix
    • ``relative_pose_se3``                a⁻¹ ∘ b in vector form
    • ``compose_pose_se3``                 a ∘ b in vector form
    • ``se3_retract_left``                 Exp(δ) ∘ pose, the pose retraction

Every function is written in JAX and is safe to differentiate with
``jax.jacfwd`` at a zero increment, which is exactly where
`core.factor_graph.FactorGraph.linearize` evaluates its Jacobians. The
small-angle branches are selected with ``jax.lax.cond`` so the derivative
of the unused branch never contaminates the result.
"""

from __future__ import annotations

import jax
import jax.numpy as jnp

_SMALL_ANGLE = 1e-5


def pose_vec_to_rt(v: jnp.ndarray) -> tuple[jnp.ndarray, jnp.ndarray]:
    """Split a 6D pose vector into (translation, rotation vector)."""
    v = jnp.asarray(v)
    return v[0:3], v[3:6]


def hat(v: jnp.ndarray) -> jnp.ndarray:
    """R^3 -> 3x3 skew-symmetric matrix."""
    x, y, z = v[0], v[1], v[2]
    zero = jnp.zeros_like(x)
    return jnp.array(
        [
            [zero, -z, y],
            [z, zero, -x],
            [-y, x, zero],
        ]
    )


def vee(W: jnp.ndarray) -> jnp.ndarray:
    """Inverse of :func:`hat`, antisymmetrizing the input first."""
    return jnp.array([
        W[2, 1] - W[1, 2],
        W[0, 2] - W[2, 0],
        W[1, 0] - W[0, 1],
    ]) / 2.0


def so3_exp(w: jnp.ndarray) -> jnp.ndarray:
    """
    Rodrigues' formula, with a second-order series near the identity.
    """
    w = jnp.asarray(w)
    theta_sq = jnp.dot(w, w)
    W = hat(w)
    I = jnp.eye(3, dtype=W.dtype)

    def small_angle(_) -> jnp.ndarray:
        return I + W + 0.5 * (W @ W)

    def general(_) -> jnp.ndarray:
        theta = jnp.sqrt(theta_sq)
        A = jnp.sin(theta) / theta
        B = (1.0 - jnp.cos(theta)) / theta_sq
        return I + A * W + B * (W @ W)

    return jax.lax.cond(theta_sq < _SMALL_ANGLE ** 2, small_angle, general, operand=None)


def so3_log(R: jnp.ndarray) -> jnp.ndarray:
    """
    Logarithm map SO(3) -> R^3.

    The trace is clamped into the valid ``arccos`` domain; near the identity
    the first-order inverse ``vee(R)`` is used.
    """
    R = jnp.asarray(R)
    cos_theta = jnp.clip((jnp.trace(R) - 1.0) / 2.0, -1.0, 1.0)
    theta = jnp.arccos(cos_theta)

    def small_angle(_) -> jnp.ndarray:
        return vee(R)

    def general(_) -> jnp.ndarray:
        return theta / (jnp.sin(theta) + 1e-12) * vee(R)

    return jax.lax.cond(theta < _SMALL_ANGLE, small_angle, general, operand=None)


def compose_pose_se3(a: jnp.ndarray, b: jnp.ndarray) -> jnp.ndarray:
    """a ∘ b for 6D pose vectors."""
    ta, wa = pose_vec_to_rt(a)
    tb, wb = pose_vec_to_rt(b)
    Ra = so3_exp(wa)
    R = Ra @ so3_exp(wb)
    return jnp.concatenate([Ra @ tb + ta, so3_log(R)])


def relative_pose_se3(a: jnp.ndarray, b: jnp.ndarray) -> jnp.ndarray:
    """
    Relative pose a⁻¹ ∘ b for 6D pose vectors:

      t_rel = R_aᵀ (t_b - t_a)
      w_rel = log(R_aᵀ R_b)
    """
    ta, wa = pose_vec_to_rt(a)
    tb, wb = pose_vec_to_rt(b)
    Ra = so3_exp(wa)
    Rb = so3_exp(wb)
    return jnp.concatenate([Ra.T @ (tb - ta), so3_log(Ra.T @ Rb)])


def se3_retract_left(pose: jnp.ndarray, delta: jnp.ndarray) -> jnp.ndarray:
    """
    Left-multiplicative pose retraction ``Exp(delta) ∘ pose``.

    ``delta`` uses the same ``[t, w]`` layout as the pose; its rotation part
    is exponentiated and applied on the left of both the rotation and the
    translation of ``pose``. A zero ``delta`` returns ``pose`` unchanged.
    """
    t, w = pose_vec_to_rt(pose)
    dt, dw = pose_vec_to_rt(delta)

    R_d = so3_exp(dw)
    R_new = R_d @ so3_exp(w)
    t_new = R_d @ t + dt
    return jnp.concatenate([t_new, so3_log(R_new)])


def se3_identity() -> jnp.ndarray:
    """Identity pose in 6D vector form."""
    return jnp.zeros(6)
