"""Build PostgreSQL queries from HTTP request parameters and run them, returning JSON."""

__version__ = "0.1.0"