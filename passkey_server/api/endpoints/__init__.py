"""Ceremony endpoint modules."""
