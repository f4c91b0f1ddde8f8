"""Solvers consuming linearized factors."""
