"""Booking status domain rules."""
