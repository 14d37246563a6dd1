"""Core domain layer - entities, interfaces, services and exceptions."""

from watchcraft.core import entities, exceptions, interfaces

__all__ = ["entities", "interfaces", "exceptions"]
