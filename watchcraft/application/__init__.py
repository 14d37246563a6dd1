"""
Application layer - service factories.

Builds the engine and its collaborators from settings.
"""

from watchcraft.application.services import (
    EngineContainer,
    create_engine,
    create_repository,
)

__all__ = [
    "EngineContainer",
    "create_engine",
    "create_repository",
]
