"""Store implementations."""
from .memory import InMemoryAlertStore, InMemoryPositionStore

__all__ = ["InMemoryAlertStore", "InMemoryPositionStore"]
