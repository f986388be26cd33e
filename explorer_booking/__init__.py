"""Explorer Booking status engine."""

__version__ = "1.0.0"
