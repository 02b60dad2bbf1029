from __future__ import annotations

import itertools

import jax
import jax.numpy as jnp
import pytest

from fg_jit.discrete.bayes_net import DiscreteBayesNet
from fg_jit.discrete.conditional import DiscreteConditional
from fg_jit.discrete.signature import DiscreteKey, Signature


def _chain(A, B, seed=0):
    """
    A -> B with P(A) = [0.3, 0.7], P(B | A=0) = [0.9, 0.1], P(B | A=1) = [0.2, 0.8].

    Stored in elimination order: B first, then A.
    """
    bn = DiscreteBayesNet(seed=seed)
    bn.add(Signature(B, (A,), "9/1 2/8"))
    bn.add(Signature(A, table="3/7"))
    return bn


def test_empty_net():
    bn = DiscreteBayesNet()
    assert bn.evaluate({}) == 1.0
    assert bn.optimize() == {}
    assert bn.sample() == {}
    assert len(bn) == 0


def test_evaluate_is_product_of_tables(binary_keys):
    A, B = binary_keys
    bn = _chain(A, B)
    for a, b in itertools.product(range(2), range(2)):
        values = {"A": a, "B": b}
        expected = 1.0
        for conditional in bn:
            expected *= conditional(values)
        assert bn.evaluate(values) == pytest.approx(expected)

    assert bn.evaluate({"A": 1, "B": 1}) == pytest.approx(0.7 * 0.8)
    assert bn.evaluate({"A": 0, "B": 1}) == pytest.approx(0.3 * 0.1)


def test_evaluate_independent_of_multiplication_order():
    A = DiscreteKey("A", 2)
    B = DiscreteKey("B", 3)
    C = DiscreteKey("C", 2)
    conditionals = [
        DiscreteConditional.from_signature(Signature(C, (A, B), "1/1 2/1 1/3 5/1 1/1 1/4")),
        DiscreteConditional.from_signature(Signature(B, (A,), "1/2/3 3/2/1")),
        DiscreteConditional.from_signature(Signature(A, table="2/5")),
    ]
    forward = DiscreteBayesNet(conditionals)
    backward = DiscreteBayesNet(list(reversed(conditionals)))

    total = 0.0
    for a, b, c in itertools.product(range(2), range(3), range(2)):
        values = {"A": a, "B": b, "C": c}
        p = forward.evaluate(values)
        assert p == pytest.approx(backward.evaluate(values))
        total += p
    assert total == pytest.approx(1.0)


def test_evaluate_missing_variable_raises(binary_keys):
    A, B = binary_keys
    bn = _chain(A, B)
    with pytest.raises(KeyError):
        bn.evaluate({"B": 0})


def test_optimize_matches_brute_force(binary_keys):
    A, B = binary_keys
    bn = _chain(A, B)

    best = max(
        itertools.product(range(2), range(2)),
        key=lambda ab: bn.evaluate({"A": ab[0], "B": ab[1]}),
    )
    assert bn.optimize() == {"A": best[0], "B": best[1]}


def test_optimize_visits_parents_first():
    """
    A -> B -> C stored as [C|B, B|A, A]. Solving in storage order would need
    B before it is assigned; the ancestral pass must not.
    """
    A = DiscreteKey("A", 2)
    B = DiscreteKey("B", 2)
    C = DiscreteKey("C", 3)
    bn = DiscreteBayesNet()
    bn.add(Signature(C, (B,), "1/1/8 6/3/1"))
    bn.add(Signature(B, (A,), "1/9 9/1"))
    bn.add(Signature(A, table="1/4"))

    assert [c.key.id for c in bn.ancestral_order()] == ["A", "B", "C"]
    assert bn.optimize() == {"A": 1, "B": 0, "C": 2}
    assert set(bn.keys()) == {"A", "B", "C"}


def test_sample_reproduces_marginals(binary_keys):
    """
    P(A=1) = 0.7 and P(B=1) = 0.3 * 0.1 + 0.7 * 0.8 = 0.59.
    """
    A, B = binary_keys
    bn = _chain(A, B)
    samples = bn.sample_batch(jax.random.PRNGKey(42), 10_000)

    assert samples["A"].shape == (10_000,)
    assert float(jnp.mean(samples["A"])) == pytest.approx(0.7, abs=0.03)
    assert float(jnp.mean(samples["B"])) == pytest.approx(0.59, abs=0.03)

    # Conditional frequencies follow the stored table.
    b_given_a1 = samples["B"][samples["A"] == 1]
    assert float(jnp.mean(b_given_a1)) == pytest.approx(0.8, abs=0.03)


def test_repeated_sample_calls_are_independent(binary_keys):
    A, B = binary_keys
    bn = _chain(A, B, seed=7)
    draws = [bn.sample() for _ in range(500)]

    assert all(set(d) == {"A", "B"} for d in draws)
    assert all(d["A"] in (0, 1) and d["B"] in (0, 1) for d in draws)
    frac_a = sum(d["A"] for d in draws) / len(draws)
    assert frac_a == pytest.approx(0.7, abs=0.1)


def test_sample_with_key_matches_batch(binary_keys):
    A, B = binary_keys
    bn = _chain(A, B)
    key = jax.random.PRNGKey(3)
    batch = bn.sample_batch(key, 8)
    keys = jax.random.split(key, 8)
    for k in range(8):
        single = bn.sample(keys[k])
        assert single == {"A": int(batch["A"][k]), "B": int(batch["B"][k])}


def test_deterministic_rows_always_sampled():
    A = DiscreteKey("A", 3)
    bn = DiscreteBayesNet(seed=1)
    bn.add(Signature(A, table="0/1/0"))
    assert all(bn.sample()["A"] == 1 for _ in range(20))
