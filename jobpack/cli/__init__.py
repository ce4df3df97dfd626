"""Command-line interface for jobpack."""

from .main import main

__all__ = ["main"]
