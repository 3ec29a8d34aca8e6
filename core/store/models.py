"""
Node Store Database Models
SQLAlchemy models for the content tree: nodes, properties, metadata bundles, content.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import uuid

from sqlalchemy import (
    DateTime, ForeignKey, Index, Integer, JSON, LargeBinary, String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship

Base = declarative_base()


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite drops tzinfo on round-trip)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Node(Base):
    """
    A folder or document in the content tree.

    Attributes:
        id: Stable identifier (UUID), independent of the name
        parent_id: Owning node, None for top-level nodes
        name: Display name, unique among siblings
        type: Type tag (e.g. ``bestpub:chapterFolder``)
        modified_at: Bumped on every property/metadata/content write
    """

    __tablename__ = "nodes"
    __table_args__ = (
        UniqueConstraint("parent_id", "name", name="uq_sibling_name"),
        Index("idx_node_parent", "parent_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("nodes.id", ondelete="CASCADE"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    modified_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    children: Mapped[List["Node"]] = relationship(
        "Node", back_populates="parent", cascade="all, delete-orphan"
    )
    parent: Mapped[Optional["Node"]] = relationship(
        "Node", back_populates="children", remote_side="Node.id"
    )
    properties: Mapped[List["NodeProperty"]] = relationship(
        "NodeProperty", back_populates="node", cascade="all, delete-orphan", lazy="selectin"
    )
    aspects: Mapped[List["NodeAspect"]] = relationship(
        "NodeAspect", back_populates="node", cascade="all, delete-orphan", lazy="selectin"
    )
    content: Mapped[Optional["NodeContent"]] = relationship(
        "NodeContent", back_populates="node", cascade="all, delete-orphan", uselist=False
    )

    def property_map(self) -> Dict[str, Any]:
        return {p.key: p.value for p in self.properties}

    def __repr__(self) -> str:
        return f"<Node {self.name} ({self.type})>"


class NodeProperty(Base):
    """A single property value; ``aspect`` names the metadata bundle it came from."""

    __tablename__ = "node_properties"

    node_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("nodes.id", ondelete="CASCADE"), primary_key=True
    )
    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    aspect: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    node: Mapped["Node"] = relationship("Node", back_populates="properties")


class NodeAspect(Base):
    """Metadata bundle attached to a node."""

    __tablename__ = "node_aspects"

    node_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("nodes.id", ondelete="CASCADE"), primary_key=True
    )
    aspect: Mapped[str] = mapped_column(String(100), primary_key=True)

    node: Mapped["Node"] = relationship("Node", back_populates="aspects")


class NodeContent(Base):
    """Binary content stored on a node."""

    __tablename__ = "node_content"

    node_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("nodes.id", ondelete="CASCADE"), primary_key=True
    )
    data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    mimetype: Mapped[str] = mapped_column(String(100), nullable=False, default="text/html")
    size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    node: Mapped["Node"] = relationship("Node", back_populates="content")
