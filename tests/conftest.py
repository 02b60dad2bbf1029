"""
Shared pytest configuration.

Double precision is enabled for the whole suite so tolerances on the
optimizer and the linear solvers can be tight.
"""

import jax
import jax.numpy as jnp
import pytest

jax.config.update("jax_enable_x64", True)

from fg_jit.core.factor_graph import FactorGraph  # noqa: E402
from fg_jit.discrete.signature import DiscreteKey  # noqa: E402
from fg_jit.slam.measurements import odom_residual, prior_residual  # noqa: E402


@pytest.fixture
def scalar_quadratic_graph():
    """One scalar x with a prior at 3: error(x) = 0.5 * (x - 3)^2."""
    fg = FactorGraph()
    x = fg.new_variable("scalar", jnp.array([0.0]))
    fg.new_factor("prior", (x,), {"target": jnp.array([3.0])})
    fg.register_residual("prior", prior_residual)
    return fg


@pytest.fixture
def chain_graph():
    """
    Three 2D points:
      - prior on p0 at (0, 0)
      - odom p0 -> p1 of (1, 0), odom p1 -> p2 of (1, 1)
    Optimum: p0 = (0, 0), p1 = (1, 0), p2 = (2, 1).
    """
    fg = FactorGraph()
    p0 = fg.new_variable("point2", jnp.array([0.3, -0.2]))
    p1 = fg.new_variable("point2", jnp.array([0.5, 0.4]))
    p2 = fg.new_variable("point2", jnp.array([1.0, 2.0]))
    fg.new_factor("prior", (p0,), {"target": jnp.zeros(2)})
    fg.new_factor("odom", (p0, p1), {"measurement": jnp.array([1.0, 0.0])})
    fg.new_factor("odom", (p1, p2), {"measurement": jnp.array([1.0, 1.0])})
    fg.register_residual("prior", prior_residual)
    fg.register_residual("odom", odom_residual)
    return fg


@pytest.fixture
def binary_keys():
    return DiscreteKey("A", 2), DiscreteKey("B", 2)
