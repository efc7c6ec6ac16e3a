"""Coordinates saving and publishing WordPress posts with attached media."""

__version__ = "0.3.0"
