"""Gumroad admin dashboard with an in-memory log of outbound API calls."""

__version__ = "0.1.0"
