"""Warden utilities."""
