"""Synthetic data for tests and examples."""

from .synthetic import SyntheticDataGenerator

__all__ = ["SyntheticDataGenerator"]
