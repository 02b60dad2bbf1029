# Copyright (c) 2025.
# This file is part of FG-JIT, released under the MIT License.

import time

import jax
import jax.numpy as jnp

from fg_jit.core.factor_graph import FactorGraph
from fg_jit.core.ordering import Ordering
from fg_jit.optimization.levenberg_marquardt import (
    LevenbergMarquardtOptimizer,
    LevenbergMarquardtParams,
    Verbosity,
)
from fg_jit.slam.measurements import odom_se3_geodesic_residual, prior_residual

jax.config.update("jax_enable_x64", True)


def build_se3_chain(num_poses: int = 10) -> FactorGraph:
    """
    Simple SE3 pose chain:
        pose0 --odom--> pose1 --odom--> ... --odom--> pose_{N-1}
    Prior on pose0, odom edges of +1m in x with a small yaw.
    """
    fg = FactorGraph()
    pose_ids = []

    # Initial guesses: perturbed around a straight line
    for i in range(num_poses):
        init_val = jnp.array(
            [
                i + 0.1 * jnp.sin(0.3 * i),  # tx
                0.05 * jnp.cos(0.2 * i),     # ty
                0.0,                         # tz
                0.0,
                0.0,
                0.01 * i,                    # yaw
            ]
        )
        pose_ids.append(fg.new_variable("pose_se3", init_val))

    fg.new_factor("prior", (pose_ids[0],), {"target": jnp.zeros(6), "weight": 1.0})

    meas = jnp.array([1.0, 0.0, 0.0, 0.0, 0.0, 0.05])
    for i in range(num_poses - 1):
        fg.new_factor(
            "odom_se3",
            (pose_ids[i], pose_ids[i + 1]),
            {"measurement": meas, "weight": 1.0},
        )

    fg.register_residual("prior", prior_residual)
    fg.register_residual("odom_se3", odom_se3_geodesic_residual)
    return fg


def run_benchmark(num_poses: int = 30, factorization: str = "cholesky", elimination: str = "multifrontal"):
    print("=== SE3 Levenberg-Marquardt Benchmark ===")
    print(f"num_poses = {num_poses}, factorization = {factorization}, elimination = {elimination}")

    fg = build_se3_chain(num_poses)
    params = LevenbergMarquardtParams(
        factorization=factorization,
        elimination=elimination,
        verbosity=Verbosity.ERROR,
    )
    opt = LevenbergMarquardtOptimizer(fg, params, ordering=Ordering.min_degree(fg))
    values = fg.initial_values()

    t0 = time.time()
    states = opt.optimize(values)
    t1 = time.time()

    final = states[-1]
    print(f"Elapsed time: {(t1 - t0) * 1000:.3f} ms over {final.iterations} iterations")
    print(f"error: {states[0].error:.6g} -> {final.error:.6g} ({final.status.value})")


if __name__ == "__main__":
    for factorization in ("cholesky", "qr"):
        for elimination in ("multifrontal", "sequential"):
            run_benchmark(factorization=factorization, elimination=elimination)
