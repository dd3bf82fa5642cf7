"""Typed pipeline configuration."""
