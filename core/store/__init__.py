"""
Content Store

Tree of named nodes with properties, metadata bundles and binary content.

Usage:
    from core.store import SqlNodeStore

    store = SqlNodeStore("data/bestpub.db")
    book_id = store.create_child(None, "9780140449136", "bestpub:bookFolder")
"""

from .protocol import NodeInfo, NodeStore, StoredContent
from .repository import SqlNodeStore

__all__ = [
    "NodeInfo",
    "NodeStore",
    "StoredContent",
    "SqlNodeStore",
]
