"""Adaptive assessment session engine."""
