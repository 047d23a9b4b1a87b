"""Wagerbook: peer-to-peer wager lifecycle and outcome agreement."""

__version__ = "0.1.0"
__author__ = "Wagerbook Team"

__all__ = ["__version__", "__author__"]
