"""Live lecture capture with simulated real-time alerts and correction reports."""

__version__ = "0.1.0"
