"""Tracking consent gate and its persisted state."""
from .consent import ConsentGate, ConsentPromptError, ConsentState, PermissionPrompt
from .store import MemoryPermissionStore, PermissionStore, RedisPermissionStore

__all__ = [
    "ConsentGate",
    "ConsentPromptError",
    "ConsentState",
    "PermissionPrompt",
    "PermissionStore",
    "MemoryPermissionStore",
    "RedisPermissionStore",
]
