"""SlideLens - local semantic search for Markdown slide decks."""

__version__ = "0.1.0"
