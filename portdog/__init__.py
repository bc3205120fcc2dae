"""Asynchronous TCP port scanner with adaptive timing and service fingerprinting."""

__version__ = "0.1.0"