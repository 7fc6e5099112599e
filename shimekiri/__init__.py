"""shimekiri: natural-language deadline tracker bot."""

__version__ = "0.1.0"
