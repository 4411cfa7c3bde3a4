"""Container engine integration."""

from .engine import ContainerEngine

__all__ = ["ContainerEngine"]
