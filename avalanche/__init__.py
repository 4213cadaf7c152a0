"""Avalanche terrain analysis backed by a vision language model."""

__version__ = "0.1.0"
