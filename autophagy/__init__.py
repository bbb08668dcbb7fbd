"""Autophagy — fasting tracker core shared by the phone and watch processes."""

__version__ = "1.0.0"
