"""Watchcraft core: aggregate consistency and service lifecycle engine."""

__version__ = "1.0.0"
