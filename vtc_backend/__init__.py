"""Administration backend for vocational training centres."""

__version__ = "0.1.0"
