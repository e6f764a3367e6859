"""agent-switch - instant account switching for AI coding CLIs."""

__version__ = "0.1.0"


__all__ = ["__version__"]
