"""ReviewFlow - collaborative content review with watchlist notifications."""

__version__ = "0.1.0"
