# Copyright (c) 2025.
# This file is part of FG-JIT, released under the MIT License.
"""Exceptions raised by FG-JIT solvers and optimizers."""


class ConfigurationError(ValueError):
    """An optimizer parameter is invalid, e.g. an unknown solver selector."""


class LinearSolveError(RuntimeError):
    """A linear solve failed for a reason other than indefiniteness."""
