"""Click analytics engine for a URL shortener."""

__version__ = "0.1.0"
