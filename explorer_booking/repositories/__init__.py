"""Booking persistence."""
