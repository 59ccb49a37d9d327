"""Inkwell security — ownership checks."""
