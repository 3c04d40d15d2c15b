"""Brace utilities."""
