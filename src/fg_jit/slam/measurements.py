# Copyright (c) 2025.
# This file is part of FG-JIT, released under the MIT License.
"""
Residual models (measurement factors) for FG-JIT.

Each function here implements a residual

    r(x; params) ∈ ℝᵏ

where ``x`` is the concatenation of the values of the factor's variables
(in ``Factor.var_ids`` order). Residuals are registered on a graph by
factor type:

    fg.register_residual("prior", prior_residual)

and `core.factor_graph.FactorGraph` differentiates them with JAX, so every
function must stay traceable (no Python control flow on values).

Weighting
---------
Most residuals accept an optional ``"weight"`` entry, applied by
``_apply_weight``:

    - scalar w: r' = sqrt(w) * r   (w is an information, i.e. 1/σ²)
    - vector w: r' = w * r         (per-component square-root information)

``sigma_to_weight`` converts standard deviations to the scalar form. The
optimizer's error is ``0.5 * ||r'||²``, so a weight of ``1/σ²`` makes the
error the negative log-likelihood of a Gaussian measurement.

Pose conventions
----------------
SE(3) poses are 6D vectors ``[tx, ty, tz, wx, wy, wz]`` (translation,
rotation vector); see `core.math3d`.
"""

from __future__ import annotations
from typing import Dict

import jax.numpy as jnp

from fg_jit.core.math3d import relative_pose_se3, so3_exp


def _apply_weight(residual: jnp.ndarray, params: dict, key: str = "weight") -> jnp.ndarray:
    w = params.get(key, None)
    if w is None:
        return residual

    w = jnp.asarray(w)
    if w.ndim == 0:
        return jnp.sqrt(w) * residual
    return w * residual


def sigma_to_weight(sigma):
    """
    Standard deviation(s) -> information weight(s), ``1 / sigma²``.
    """
    s = jnp.asarray(sigma)
    return 1.0 / (s * s)


def prior_residual(x: jnp.ndarray, params: Dict[str, jnp.ndarray]) -> jnp.ndarray:
    """
    Prior on a single Euclidean variable:
        residual = x - target
    """
    r = x - params["target"]
    return _apply_weight(r, params)


def odom_residual(x: jnp.ndarray, params: Dict[str, jnp.ndarray]) -> jnp.ndarray:
    """
    Euclidean between-factor:

        x = [x0, x1]
        residual = (x1 - x0) - measurement
    """
    dim = x.shape[0] // 2
    r = (x[dim:] - x[:dim]) - params["measurement"]
    return _apply_weight(r, params)


def odom_se3_geodesic_residual(x: jnp.ndarray, params: Dict[str, jnp.ndarray]) -> jnp.ndarray:
    """
    SE(3) relative pose constraint:

        residual = relative_pose_se3(pose0, pose1) - measurement

    where ``measurement`` is the expected pose of 1 in the frame of 0.
    """
    if x.shape[0] != 12:
        raise ValueError("odom_se3_geodesic_residual expects two 6D poses stacked.")

    r = relative_pose_se3(x[:6], x[6:]) - params["measurement"]
    return _apply_weight(r, params)


def pose_landmark_relative_residual(x: jnp.ndarray, params: dict) -> jnp.ndarray:
    """
    Landmark position observed in the pose frame.

    x: concatenated [pose(6), landmark(3)]

        landmark_pose = Rᵀ (landmark - t)
        residual = landmark_pose - measurement
    """
    t = x[0:3]
    R = so3_exp(x[3:6])
    landmark = x[6:9]

    r = R.T @ (landmark - t) - params["measurement"]
    return _apply_weight(r, params)


def range_residual(x: jnp.ndarray, params: dict) -> jnp.ndarray:
    """
    Euclidean distance between the first ``dim`` components of two
    variables (a point and a point, or a pose translation and a point).

    params:
      - "measurement": measured range (scalar)
      - "dim": number of leading components compared (default 3)
      - "split": offset of the second variable inside ``x``
    """
    dim = int(params.get("dim", 3))
    split = int(params.get("split", x.shape[0] // 2))
    a = x[:dim]
    b = x[split:split + dim]
    diff = b - a
    # Smoothed norm keeps the Jacobian finite when the points coincide.
    dist = jnp.sqrt(jnp.dot(diff, diff) + 1e-12)
    r = jnp.reshape(dist - params["measurement"], (1,))
    return _apply_weight(r, params)
