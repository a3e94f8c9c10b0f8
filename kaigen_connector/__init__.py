"""Kaigen connector: lets the Kaigen platform read and edit site content."""

__version__ = "1.0.0"
