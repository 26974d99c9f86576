"""Shared helpers: paths, settings and registry access."""
