"""tenx - a terminal coding assistant with model routing."""

__version__ = "0.1.0"

__all__ = ["__version__"]
