"""Settlement, invoicing and post-delivery adjustment engine for trucking operations."""

__version__ = "0.1.0"
