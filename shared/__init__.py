"""Configuration and observability shared across ddml components."""
