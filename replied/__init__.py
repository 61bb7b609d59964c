"""replied: anonymous Q&A in the terminal."""

__version__ = "0.1.0"
