from __future__ import annotations

import jax.numpy as jnp
import pytest

from fg_jit.core.factor_graph import FactorGraph
from fg_jit.core.ordering import Ordering
from fg_jit.core.types import NodeId


def test_natural_ordering_is_sorted(chain_graph):
    ordering = Ordering.natural(chain_graph)
    assert list(ordering) == [0, 1, 2]
    assert ordering.index(NodeId(2)) == 2
    assert NodeId(1) in ordering
    assert ordering[0] == NodeId(0)


def test_min_degree_eliminates_leaves_first():
    """
    Star graph centred on 0 with leaves 1, 2, 3.
    """
    fg = FactorGraph()
    ids = [fg.new_variable("scalar", jnp.zeros(1)) for _ in range(4)]
    for leaf in ids[1:]:
        fg.new_factor("odom", (ids[0], leaf), {"measurement": jnp.zeros(1)})

    ordering = Ordering.min_degree(fg)
    assert list(ordering) == [1, 2, 0, 3]


def test_min_degree_on_chain(chain_graph):
    assert list(Ordering.min_degree(chain_graph)) == [0, 1, 2]


def test_duplicate_keys_rejected():
    with pytest.raises(ValueError):
        Ordering([NodeId(0), NodeId(0)])


def test_orderings_compare_by_keys():
    assert Ordering([NodeId(1), NodeId(0)]) == Ordering([NodeId(1), NodeId(0)])
    assert Ordering([NodeId(1), NodeId(0)]) != Ordering([NodeId(0), NodeId(1)])
