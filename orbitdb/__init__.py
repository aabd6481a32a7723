"""Database manager over content-addressed storage: addresses, caches, events and access control."""

__version__ = "0.1.0"