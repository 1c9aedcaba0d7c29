from .base import AbstractFlowStore
from .memory import InMemoryFlowStore

__all__ = ["AbstractFlowStore", "InMemoryFlowStore"]
