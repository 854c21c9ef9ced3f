"""Share exchange settlement API."""

__version__ = "1.0.0"
