"""
NodeStore protocol: the contract the publishing core needs from a
tree-structured content store.

Usage:
    store.create_child(parent_id, "chapter-3", CHAPTER_FOLDER_TYPE)
    for node in store.list_children(book_id):
        node.properties["chapterNumber"]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Set, runtime_checkable


@dataclass
class NodeInfo:
    """Snapshot of a node: identity, name, type, properties and attached bundles."""
    id: str
    parent_id: Optional[str]
    name: str
    type: str
    properties: Dict[str, Any] = field(default_factory=dict)
    aspects: Set[str] = field(default_factory=set)
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None


@dataclass
class StoredContent:
    data: bytes
    mimetype: str


@runtime_checkable
class NodeStore(Protocol):
    """Tree store with ordered sibling listing and per-node properties."""

    def list_children(self, parent_id: Optional[str], type_tag: Optional[str] = None) -> List[NodeInfo]: ...

    def get_node(self, node_id: str) -> Optional[NodeInfo]: ...

    def exists(self, node_id: str) -> bool: ...

    def get_parent(self, node_id: str) -> Optional[NodeInfo]: ...

    def get_modified_at(self, node_id: str) -> Optional[datetime]: ...

    def find_child(self, parent_id: Optional[str], name: str) -> Optional[NodeInfo]: ...

    def create_child(self, parent_id: Optional[str], name: str, type_tag: str) -> str: ...

    def delete_child(self, node_id: str) -> None: ...

    def set_property(self, node_id: str, key: str, value: Any, touch: bool = True) -> None: ...

    def get_property(self, node_id: str, key: str) -> Any: ...

    def attach_metadata(self, node_id: str, bundle_tag: str, properties: Mapping[str, Any]) -> None: ...

    def copy_metadata(self, from_id: str, to_id: str, bundle_tags: Iterable[str]) -> None: ...

    def write_content(self, node_id: str, data: bytes, mimetype: str) -> None: ...

    def read_content(self, node_id: str) -> Optional[StoredContent]: ...

    def display_path(self, node_id: str) -> str: ...
