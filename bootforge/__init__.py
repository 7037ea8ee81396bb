"""bootforge: declarative, resumable project bootstrap engine."""

__version__ = "0.4.0"
