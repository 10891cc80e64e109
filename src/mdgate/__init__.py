"""mdgate: serve cached Markdown renditions of HTML pages on demand."""

__version__ = "0.1.0"
