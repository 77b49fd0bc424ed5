"""coursepath: learning progression and certification engine."""

__version__ = "0.1.0"
