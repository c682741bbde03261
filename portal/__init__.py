"""Municipal citizen-services portal."""

__version__ = "0.1.0"
