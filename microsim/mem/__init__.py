"""Address space model."""

from .memory import Memory, MemoryBoundsError

__all__ = ['Memory', 'MemoryBoundsError']
