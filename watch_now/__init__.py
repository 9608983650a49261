"""watch-now: universal development monitor for code quality and service health."""

__version__ = "0.1.0"
