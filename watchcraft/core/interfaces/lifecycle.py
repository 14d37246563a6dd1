"""Lifecycle capability for components that hold resources."""

from abc import ABC, abstractmethod


class Closeable(ABC):
    """A component that must be closed when the application shuts down."""

    @abstractmethod
    async def close(self) -> None:
        """Release held resources. Safe to call more than once."""
        pass
