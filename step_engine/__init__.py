"""Streaming step counting for collar IMU chunks."""

__version__ = "0.1.0"
