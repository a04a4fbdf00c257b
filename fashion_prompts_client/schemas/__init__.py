"""
Client Schemas package.
Exports all DTOs for the Fashion Prompt Studio Python client.
"""
from .progress import ItemStatus, ItemState, RelayProgressState, ServerUpdate, ProgressState

__all__ = [
    # Progress
    "ItemStatus", "ItemState", "RelayProgressState", "ServerUpdate", "ProgressState",
]
