# Copyright (c) 2025.
# This file is part of FG-JIT, released under the MIT License.
"""
Core typed data structures for FG-JIT.

This module defines the lightweight container classes used by the nonlinear
factor graph. These types only store structure and initial values; every
numerical operation (error evaluation, linearization, solving) is performed
by JAX functions in `core.factor_graph`, `linear` and `optimization`.

Classes
-------
Variable
    A node in the nonlinear factor graph:
    - id: unique NodeId
    - type: variable type string; selects the manifold used for retraction
      (see `slam.manifold.TYPE_TO_MANIFOLD`)
    - value: initial numeric state, a 1-D JAX array

Factor
    A residual term over one or more variables:
    - id: unique FactorId
    - type: string key selecting a registered residual function
    - var_ids: ordered tuple of NodeIds whose values are stacked and passed
      to the residual
    - params: measurement, weight and other residual parameters

Notes
-----
Variables and factors are plain mutable dataclasses used while a graph is
being assembled. Once optimization starts, estimates live in immutable
`core.values.Values` objects and the graph itself is treated as fixed.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import NewType, Dict, Any

NodeId = NewType("NodeId", int)
FactorId = NewType("FactorId", int)


@dataclass
class Variable:
    """Optimization variable node in the factor graph."""
    id: NodeId
    type: str          # e.g. "pose_se3", "point3", "scalar"
    value: Any         # 1-D JAX array


@dataclass
class Factor:
    """Residual factor connecting variables."""
    id: FactorId
    type: str          # e.g. "prior", "odom", "odom_se3_geodesic"
    var_ids: tuple[NodeId, ...]
    params: Dict[str, Any]  # Measurement, weight, etc.
