"""Inkwell persistence — declarative base, models, engine registry, sessions."""
