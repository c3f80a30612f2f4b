"""Avalanche slope-angle overlay tiles computed from terrain-RGB elevation data."""

__version__ = "1.0.0"
