"""Manifold types, noise models and measurement factors."""
