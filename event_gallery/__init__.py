"""Shared event photo gallery with face-based grouping."""

__version__ = "0.1.0"
