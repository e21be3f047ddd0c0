"""Detection and pose tracking of blinking active markers from event streams."""

__version__ = "0.1.0"