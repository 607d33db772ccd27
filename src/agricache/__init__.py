"""Local content cache for the AgriConnect platform."""

__version__ = "0.1.0"
