"""
Queue persistence backends.

Each backend stores the full, ordered queue snapshot and degrades to an
empty queue when stored state cannot be read.
"""

from .base import QueuePersistence, decode_items, encode_items
from .jsonl import JsonlQueuePersistence
from .memory import MemoryQueuePersistence
from .sqlite import SqliteQueuePersistence

__all__ = [
    "QueuePersistence",
    "JsonlQueuePersistence",
    "MemoryQueuePersistence",
    "SqliteQueuePersistence",
    "decode_items",
    "encode_items",
]
