# Copyright (c) 2025.
# This file is part of FG-JIT, released under the MIT License.
"""
Manifold metadata and retraction for FG-JIT variables.

The optimizer solves for a step in a flat tangent space and then needs to
apply that step back onto an estimate whose variables may live on curved
manifolds. This module is the single place that knows how:

    • ``TYPE_TO_MANIFOLD`` maps variable types (``"pose_se3"``,
      ``"point3"``, ...) to a manifold tag (``"se3"`` or ``"euclidean"``).
    • ``retract_block`` applies one tangent increment to one variable:
        - ``"se3"``: left-multiplicative SE(3) retraction
        - ``"euclidean"``: plain addition

`core.values.Values.retract` uses ``retract_block`` for every variable, and
`core.factor_graph.FactorGraph.linearize` differentiates through the same
function so Jacobians are taken with respect to the tangent increment.

To add a manifold, add a tag to ``TYPE_TO_MANIFOLD`` and a branch in
``retract_block``; nothing else in the optimizer needs to change.
"""

from __future__ import annotations

from typing import Dict

import jax.numpy as jnp

from fg_jit.core.math3d import se3_retract_left

EUCLIDEAN = "euclidean"
SE3 = "se3"

TYPE_TO_MANIFOLD: Dict[str, str] = {
    "pose_se3": SE3,
    "point3": EUCLIDEAN,
    "point2": EUCLIDEAN,
    "pose1d": EUCLIDEAN,
    "scalar": EUCLIDEAN,
}


def get_manifold_for_var_type(var_type: str) -> str:
    return TYPE_TO_MANIFOLD.get(var_type, EUCLIDEAN)


def retract_block(manifold: str, x: jnp.ndarray, delta: jnp.ndarray) -> jnp.ndarray:
    """Apply tangent increment ``delta`` to a single variable value ``x``."""
    if manifold == SE3:
        return se3_retract_left(x, delta)
    if manifold == EUCLIDEAN:
        return x + delta
    raise ValueError(f"Unknown manifold '{manifold}'")
