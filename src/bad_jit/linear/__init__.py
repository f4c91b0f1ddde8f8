"""Sparse linear factors produced by linearization."""
