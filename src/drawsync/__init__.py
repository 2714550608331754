"""drawsync: keeps a diagram and its JSON text in sync, with AI generation and GitHub storage."""

__version__ = "0.1.0"
