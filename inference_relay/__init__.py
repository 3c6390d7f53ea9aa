"""Authenticated single-hop HTTP relay to a text/image inference API."""

__version__ = "1.0.0"
