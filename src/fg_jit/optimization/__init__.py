"""Nonlinear optimizers."""
