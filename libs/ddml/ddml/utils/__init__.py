"""Utility functions."""

from .linalg import csolve

__all__ = ["csolve"]
