"""
Node Store Repository
SQLAlchemy-backed implementation of the NodeStore protocol.
"""
import functools
import logging
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.publishing.exceptions import NotFoundError, StoreError, TransientStoreError

from .models import Base, Node, NodeAspect, NodeContent, NodeProperty, utcnow
from .protocol import NodeInfo, StoredContent

logger = logging.getLogger(__name__)


def _store_call(func):
    """Translate SQLAlchemy errors and retry the transient ones."""

    @functools.wraps(func)
    def translated(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except OperationalError as e:
            if "locked" in str(e).lower() or "busy" in str(e).lower():
                raise TransientStoreError(f"Store busy during {func.__name__}: {e}") from e
            raise StoreError(f"Store failure during {func.__name__}: {e}") from e
        except IntegrityError as e:
            raise StoreError(f"Store constraint violated during {func.__name__}: {e.orig}") from e
        except SQLAlchemyError as e:
            raise StoreError(f"Store failure during {func.__name__}: {e}") from e

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        return self._retrying(translated, self, *args, **kwargs)

    return wrapper


def _to_info(node: Node) -> NodeInfo:
    return NodeInfo(
        id=node.id,
        parent_id=node.parent_id,
        name=node.name,
        type=node.type,
        properties=node.property_map(),
        aspects={a.aspect for a in node.aspects},
        created_at=node.created_at,
        modified_at=node.modified_at,
    )


class SqlNodeStore:
    """
    Content tree persisted in SQLite through SQLAlchemy.

    Every public call runs in its own session and commits before returning,
    so a failure part-way through a multi-call operation leaves the calls
    that already returned durable.
    """

    def __init__(
        self,
        db_path: str = "data/bestpub.db",
        retry_attempts: Optional[int] = None,
        retry_wait: Optional[float] = None,
    ):
        """Initialize store with database path."""
        from config.settings import settings

        self.db_path = db_path
        self._engine = None
        self._session_factory = None
        self._retrying = Retrying(
            stop=stop_after_attempt(retry_attempts or settings.store_retry_attempts),
            wait=wait_exponential(
                multiplier=retry_wait if retry_wait is not None else settings.store_retry_wait_seconds,
                max=2,
            ),
            retry=retry_if_exception_type(TransientStoreError),
            reraise=True,
        )

    @property
    def engine(self):
        """Get or create SQLAlchemy engine."""
        if self._engine is None:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False, "timeout": 15},
            )

            @event.listens_for(self._engine, "connect")
            def _set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

            Base.metadata.create_all(self._engine)
        return self._engine

    @property
    def session_factory(self):
        """Get session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        return self._session_factory

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.session_factory()

    def _require(self, session: Session, node_id: str) -> Node:
        node = session.get(Node, node_id)
        if node is None:
            raise NotFoundError(f"Node does not exist: {node_id}", node_id=node_id)
        return node

    # ==================== READ ====================

    @_store_call
    def list_children(self, parent_id: Optional[str], type_tag: Optional[str] = None) -> List[NodeInfo]:
        """Children of ``parent_id`` ordered by name (top-level nodes for None)."""
        with self.get_session() as session:
            query = session.query(Node).filter(Node.parent_id == parent_id)
            if type_tag:
                query = query.filter(Node.type == type_tag)
            return [_to_info(n) for n in query.order_by(Node.name).all()]

    @_store_call
    def get_node(self, node_id: str) -> Optional[NodeInfo]:
        with self.get_session() as session:
            node = session.get(Node, node_id)
            return _to_info(node) if node else None

    def exists(self, node_id: str) -> bool:
        return self.get_node(node_id) is not None

    @_store_call
    def get_parent(self, node_id: str) -> Optional[NodeInfo]:
        with self.get_session() as session:
            node = self._require(session, node_id)
            if node.parent_id is None:
                return None
            return _to_info(session.get(Node, node.parent_id))

    @_store_call
    def get_modified_at(self, node_id: str):
        with self.get_session() as session:
            return self._require(session, node_id).modified_at

    @_store_call
    def find_child(self, parent_id: Optional[str], name: str) -> Optional[NodeInfo]:
        with self.get_session() as session:
            node = session.query(Node).filter(
                Node.parent_id == parent_id,
                Node.name == name,
            ).first()
            return _to_info(node) if node else None

    @_store_call
    def get_property(self, node_id: str, key: str) -> Any:
        with self.get_session() as session:
            self._require(session, node_id)
            prop = session.get(NodeProperty, (node_id, key))
            return prop.value if prop else None

    @_store_call
    def read_content(self, node_id: str) -> Optional[StoredContent]:
        with self.get_session() as session:
            self._require(session, node_id)
            content = session.get(NodeContent, node_id)
            if content is None:
                return None
            return StoredContent(data=content.data, mimetype=content.mimetype)

    @_store_call
    def display_path(self, node_id: str) -> str:
        """Slash-separated name path, e.g. ``/9780140449136/chapter-3``."""
        with self.get_session() as session:
            names = []
            node = session.get(Node, node_id)
            while node is not None:
                names.append(node.name)
                node = session.get(Node, node.parent_id) if node.parent_id else None
            return "/" + "/".join(reversed(names))

    # ==================== WRITE ====================

    @_store_call
    def create_child(self, parent_id: Optional[str], name: str, type_tag: str) -> str:
        """Create a node under ``parent_id``; sibling names must be unique."""
        with self.get_session() as session:
            if parent_id is not None:
                self._require(session, parent_id)
            duplicate = session.query(Node.id).filter(
                Node.parent_id == parent_id,
                Node.name == name,
            ).first()
            if duplicate:
                raise StoreError(
                    f"A node named '{name}' already exists", parent_id=parent_id, name=name
                )
            now = utcnow()
            node = Node(parent_id=parent_id, name=name, type=type_tag,
                        created_at=now, modified_at=now)
            session.add(node)
            session.commit()
            return node.id

    @_store_call
    def delete_child(self, node_id: str) -> None:
        """Delete a node and everything under it."""
        with self.get_session() as session:
            node = self._require(session, node_id)
            session.delete(node)
            session.commit()

    @_store_call
    def set_property(self, node_id: str, key: str, value: Any, touch: bool = True) -> None:
        """
        Set one property.  ``name`` renames the node.

        ``touch=False`` leaves ``modified_at`` alone (bookkeeping writes
        such as the published date).
        """
        with self.get_session() as session:
            node = self._require(session, node_id)
            if key == "name":
                node.name = value
            else:
                prop = session.get(NodeProperty, (node_id, key))
                if prop is None:
                    session.add(NodeProperty(node_id=node_id, key=key, value=value))
                else:
                    prop.value = value
            if touch:
                node.modified_at = utcnow()
            session.commit()

    @_store_call
    def attach_metadata(self, node_id: str, bundle_tag: str, properties: Mapping[str, Any]) -> None:
        """Attach a metadata bundle and set its properties in one commit."""
        with self.get_session() as session:
            node = self._require(session, node_id)
            if session.get(NodeAspect, (node_id, bundle_tag)) is None:
                session.add(NodeAspect(node_id=node_id, aspect=bundle_tag))
            for key, value in properties.items():
                prop = session.get(NodeProperty, (node_id, key))
                if prop is None:
                    session.add(NodeProperty(node_id=node_id, key=key, value=value, aspect=bundle_tag))
                else:
                    prop.value = value
                    prop.aspect = bundle_tag
            node.modified_at = utcnow()
            session.commit()

    @_store_call
    def detach_metadata(self, node_id: str, bundle_tag: str) -> None:
        with self.get_session() as session:
            node = self._require(session, node_id)
            session.query(NodeProperty).filter(
                NodeProperty.node_id == node_id,
                NodeProperty.aspect == bundle_tag,
            ).delete()
            session.query(NodeAspect).filter(
                NodeAspect.node_id == node_id,
                NodeAspect.aspect == bundle_tag,
            ).delete()
            node.modified_at = utcnow()
            session.commit()

    def copy_metadata(self, from_id: str, to_id: str, bundle_tags: Iterable[str]) -> None:
        """Copy the named bundles (with their properties) from one node to another."""
        source = self.get_node(from_id)
        if source is None:
            raise NotFoundError(f"Node does not exist: {from_id}", node_id=from_id)
        for tag in bundle_tags:
            if tag not in source.aspects:
                continue
            with self.get_session() as session:
                props = {
                    p.key: p.value
                    for p in session.query(NodeProperty).filter(
                        NodeProperty.node_id == from_id,
                        NodeProperty.aspect == tag,
                    )
                }
            self.attach_metadata(to_id, tag, props)

    @_store_call
    def write_content(self, node_id: str, data: bytes, mimetype: str) -> None:
        with self.get_session() as session:
            node = self._require(session, node_id)
            content = session.get(NodeContent, node_id)
            if content is None:
                session.add(NodeContent(node_id=node_id, data=data, mimetype=mimetype, size=len(data)))
            else:
                content.data = data
                content.mimetype = mimetype
                content.size = len(data)
            node.modified_at = utcnow()
            session.commit()
