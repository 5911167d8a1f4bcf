"""Voice Studio: text-to-speech studio client and provider relay."""

__version__ = "1.0.0"
