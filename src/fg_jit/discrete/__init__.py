"""Discrete conditionals and Bayes networks."""
