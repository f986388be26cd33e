"""Interfaces to external systems."""
