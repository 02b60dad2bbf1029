# Copyright (c) 2025.
# This file is part of FG-JIT, released under the MIT License.
"""
Levenberg-Marquardt optimization of a nonlinear factor graph.

The optimizer owns the damping schedule and the accept/reject control flow;
everything numerical is delegated:

    • linearization       `core.factor_graph.FactorGraph.linearize`
    • damped linear solve `linear.elimination.damped_solve` (injectable)
    • retraction          `core.values.Values.retract`

Public contract
---------------
initial_state(values) -> LMState
    Wraps the estimate, evaluates its error, seeds λ from the params.

iterate(state) -> LMState
    One outer iteration. The graph is linearized once at ``state.values``;
    then, for increasing λ, a damped copy of the linear system (one
    zero-mean isotropic prior with σ = 1/√λ per variable) is solved and the
    step retracted. A step is accepted as soon as it does not increase the
    error, after which λ is divided by ``lambda_factor``. Rejected steps and
    indefinite systems multiply λ by ``lambda_factor``; once λ has reached
    ``lambda_upper_bound`` the iteration gives up and returns the unchanged
    estimate with ``status = LMStatus.SATURATED``.

optimize(values) -> List[LMState]
    Repeats ``iterate`` until ``check_convergence`` holds, the loop
    saturates, or ``max_iterations`` is reached.

States are immutable and each ``iterate`` returns a new one, so the list
returned by ``optimize`` is the full convergence history.

Configuration
-------------
`LevenbergMarquardtParams` is a plain dataclass. It is validated at the
start of every ``iterate`` call: an unknown ``factorization`` /
``elimination`` selector (or a damping schedule that cannot terminate)
raises `core.errors.ConfigurationError` before anything is linearized.

Logging
-------
Messages go to ``logging.getLogger(__name__)``; ``verbosity`` and
``lm_verbosity`` decide which messages are emitted at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Callable, List, Optional, Sequence, Tuple

from fg_jit.core.errors import ConfigurationError, LinearSolveError
from fg_jit.core.ordering import Ordering
from fg_jit.core.values import Values
from fg_jit.linear import elimination
from fg_jit.linear.elimination import Failed, Indefinite, SolveResult, Solved, resolve_solver
from fg_jit.linear.gaussian_factor_graph import GaussianFactorGraph

logger = logging.getLogger(__name__)

DampedSolveFn = Callable[[GaussianFactorGraph, Sequence[int], str, str], SolveResult]


class Verbosity(IntEnum):
    SILENT = 0
    ERROR = 1
    VALUES = 2
    DELTA = 3


class LMVerbosity(IntEnum):
    SILENT = 0
    LAMBDA = 1
    TRYLAMBDA = 2
    TRYDELTA = 3
    DAMPED = 4


class LMStatus(Enum):
    INITIAL = "initial"
    ACCEPTED = "accepted"
    SATURATED = "saturated"


@dataclass
class LevenbergMarquardtParams:
    """
    Damping schedule, solver selection and stopping tolerances.

    An accepted step sets λ to ``max(λ / lambda_factor, lambda_lower_bound)``.
    Once λ sits at ``lambda_lower_bound`` an accepted step therefore leaves
    it unchanged rather than dividing it again.
    """
    lambda_initial: float = 1e-5
    lambda_factor: float = 10.0
    lambda_upper_bound: float = 1e5
    lambda_lower_bound: float = 1e-20   # keeps λ strictly positive
    factorization: str = "cholesky"     # "cholesky" or "qr"
    elimination: str = "multifrontal"   # "multifrontal" or "sequential"
    max_iterations: int = 100
    relative_error_tol: float = 1e-5
    absolute_error_tol: float = 1e-5
    error_tol: float = 0.0
    verbosity: Verbosity = Verbosity.SILENT
    lm_verbosity: LMVerbosity = LMVerbosity.SILENT

    def validate(self) -> None:
        resolve_solver(self.factorization, self.elimination)
        if not self.lambda_factor > 1.0:
            raise ConfigurationError(
                f"Optimization parameter is invalid: lambda_factor={self.lambda_factor} must be > 1"
            )
        if not self.lambda_initial > 0.0:
            raise ConfigurationError(
                f"Optimization parameter is invalid: lambda_initial={self.lambda_initial} must be > 0"
            )
        if not self.lambda_lower_bound > 0.0:
            raise ConfigurationError(
                f"Optimization parameter is invalid: lambda_lower_bound={self.lambda_lower_bound} must be > 0"
            )
        if self.lambda_lower_bound > self.lambda_upper_bound:
            raise ConfigurationError(
                f"Optimization parameter is invalid: lambda_lower_bound={self.lambda_lower_bound} "
                f"exceeds lambda_upper_bound={self.lambda_upper_bound}"
            )


@dataclass(frozen=True, eq=False)
class LMState:
    values: Values
    error: float
    lambda_: float
    iterations: int
    status: LMStatus = LMStatus.INITIAL


def check_convergence(
    relative_error_tol: float,
    absolute_error_tol: float,
    error_tol: float,
    current_error: float,
    new_error: float,
    verbosity: Verbosity = Verbosity.SILENT,
) -> bool:
    """
    True when the error is already below ``error_tol`` or the last decrease
    is small in either relative or absolute terms.
    """
    if current_error <= error_tol:
        if verbosity >= Verbosity.ERROR:
            logger.info("errorThreshold: %g <= %g", current_error, error_tol)
        return True

    absolute_decrease = current_error - new_error
    relative_decrease = absolute_decrease / current_error
    converged = (relative_decrease <= relative_error_tol) or (
        absolute_decrease <= absolute_error_tol
    )

    if verbosity >= Verbosity.ERROR:
        if absolute_decrease < 0.0:
            logger.warning(
                "Warning: stopping nonlinear iterations because error increased"
            )
        elif converged:
            logger.info(
                "converged: absolute decrease %g, relative decrease %g",
                absolute_decrease,
                relative_decrease,
            )
    return converged


class LevenbergMarquardtOptimizer:
    """
    Levenberg-Marquardt over a fixed graph and a fixed ordering.

    ``damped_solve`` defaults to `linear.elimination.damped_solve`; any
    callable with the same signature returning a `SolveResult` can be
    supplied instead.

    Instances cache the per-variable dimensions on the first ``iterate``
    call. That cache is only valid for the ordering given here, and makes
    a single instance unsafe to ``iterate`` from several threads at once.
    """

    def __init__(
        self,
        graph,
        params: Optional[LevenbergMarquardtParams] = None,
        ordering: Optional[Ordering] = None,
        damped_solve: Optional[DampedSolveFn] = None,
    ) -> None:
        self.graph = graph
        self.params = params if params is not None else LevenbergMarquardtParams()
        self.ordering = ordering if ordering is not None else Ordering.natural(graph)
        self._damped_solve = damped_solve if damped_solve is not None else elimination.damped_solve
        self._dimensions: Optional[Tuple[int, ...]] = None

    @property
    def dimensions(self) -> Optional[Tuple[int, ...]]:
        return self._dimensions

    def initial_state(self, values: Values) -> LMState:
        return LMState(
            values=values,
            error=self.graph.error(values),
            lambda_=self.params.lambda_initial,
            iterations=0,
        )

    def iterate(self, current: LMState) -> LMState:
        params = self.params
        params.validate()

        lm_verbosity = params.lm_verbosity
        lambda_factor = params.lambda_factor

        linear = self.graph.linearize(current.values, self.ordering)

        if self._dimensions is None:
            self._dimensions = current.values.dims(self.ordering)
        dims = self._dimensions

        lambda_ = current.lambda_
        next_values = current.values
        next_error = current.error
        status = LMStatus.SATURATED

        # Keep increasing lambda until we make progress or hit the upper bound.
        while True:
            if lm_verbosity >= LMVerbosity.TRYLAMBDA:
                logger.debug("trying lambda = %g", lambda_)

            damped = linear.damped(dims, lambda_)
            if lm_verbosity >= LMVerbosity.DAMPED:
                logger.debug("damped system: %d factors over %d variables", len(damped), len(dims))

            result = self._damped_solve(damped, dims, params.factorization, params.elimination)

            if isinstance(result, Solved):
                delta = result.delta
                if lm_verbosity >= LMVerbosity.TRYLAMBDA:
                    logger.debug("linear delta norm = %g", delta.norm())
                if lm_verbosity >= LMVerbosity.TRYDELTA:
                    logger.debug("delta = %s", delta.vector)

                new_values = current.values.retract(delta, self.ordering)
                error = self.graph.error(new_values)
                if lm_verbosity >= LMVerbosity.TRYLAMBDA:
                    logger.debug("next error = %g", error)

                if error <= current.error:
                    next_values = new_values
                    next_error = error
                    lambda_ = max(lambda_ / lambda_factor, params.lambda_lower_bound)
                    status = LMStatus.ACCEPTED
                    break
            elif isinstance(result, Indefinite):
                if lm_verbosity >= LMVerbosity.LAMBDA:
                    logger.info("Negative matrix, increasing lambda (%s)", result.detail)
            elif isinstance(result, Failed):
                raise LinearSolveError(result.detail)
            else:
                raise TypeError(f"damped solve returned {type(result).__name__}, expected a SolveResult")

            # Rejected: either the step increased the error or the system was indefinite.
            if lambda_ >= params.lambda_upper_bound:
                if params.verbosity >= Verbosity.ERROR:
                    logger.warning(
                        "Levenberg-Marquardt giving up because cannot decrease error with maximum lambda"
                    )
                break
            lambda_ *= lambda_factor

        return LMState(
            values=next_values,
            error=next_error,
            lambda_=lambda_,
            iterations=current.iterations + 1,
            status=status,
        )

    def optimize(self, values: Values) -> List[LMState]:
        params = self.params
        state = self.initial_state(values)
        states = [state]

        if state.error <= params.error_tol:
            return states

        while state.iterations < params.max_iterations:
            new_state = self.iterate(state)
            states.append(new_state)

            if params.verbosity >= Verbosity.VALUES:
                logger.info(
                    "iteration %d: error = %g, lambda = %g",
                    new_state.iterations,
                    new_state.error,
                    new_state.lambda_,
                )

            done = new_state.status is LMStatus.SATURATED or check_convergence(
                params.relative_error_tol,
                params.absolute_error_tol,
                params.error_tol,
                state.error,
                new_state.error,
                params.verbosity,
            )
            state = new_state
            if done:
                break

        return states
