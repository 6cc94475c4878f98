"""Periodic sampler for ranked item feeds."""

__version__ = "0.1.0"
