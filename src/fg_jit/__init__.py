# Copyright (c) 2025.
# This file is part of FG-JIT, released under the MIT License.
"""
FG-JIT: factor graph inference and optimization in JAX.

Two engines share this package:

    • `discrete`: discrete Bayes networks (evaluate, most probable
      assignment, ancestral sampling)
    • `optimization.levenberg_marquardt`: Levenberg-Marquardt over a
      nonlinear factor graph (`core.factor_graph.FactorGraph`)
"""

from fg_jit.core.factor_graph import FactorGraph
from fg_jit.core.ordering import Ordering
from fg_jit.core.values import Values, VectorValues
from fg_jit.discrete.bayes_net import DiscreteBayesNet
from fg_jit.discrete.conditional import DiscreteConditional
from fg_jit.discrete.signature import DiscreteKey, Signature
from fg_jit.optimization.levenberg_marquardt import (
    LevenbergMarquardtOptimizer,
    LevenbergMarquardtParams,
    LMState,
    LMStatus,
)

__version__ = "0.1.0"
