"""Measurement models and manifold handling."""
