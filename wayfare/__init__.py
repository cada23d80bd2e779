"""wayfare - search, filter and book flights from the terminal."""

__version__ = "0.1.0"
