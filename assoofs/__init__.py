"""A tiny block-based filesystem kept in an image file: formatting, block access, metadata and file operations."""

__version__ = "0.1.0"