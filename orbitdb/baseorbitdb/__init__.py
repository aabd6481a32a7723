"""The database instance: options, creating and opening stores, and head exchange."""

__version__ = "0.1.0"