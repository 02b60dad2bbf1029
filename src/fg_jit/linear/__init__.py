"""Gaussian factor graphs and dense elimination solvers."""
