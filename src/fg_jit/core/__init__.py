"""Typed containers, nonlinear factor graph, values and orderings."""
