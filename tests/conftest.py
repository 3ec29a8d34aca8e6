"""Shared fixtures: a publishing service wired to throwaway databases under tmp_path."""

import pytest

from core.database import SQLiteBackend
from core.publishing.assembler import FileSystemSink
from core.publishing.locks import BookLockRegistry
from core.publishing.service import PublishingService
from core.store import SqlNodeStore
from core.workflow import WorkflowService

from tests.helpers import ISBN


@pytest.fixture
def store(tmp_path):
    return SqlNodeStore(str(tmp_path / "store.db"), retry_attempts=1, retry_wait=0)


@pytest.fixture
def workflow(tmp_path):
    return WorkflowService(SQLiteBackend(tmp_path / "workflow.db"))


@pytest.fixture
def sink(tmp_path):
    return FileSystemSink(tmp_path / "artifacts")


@pytest.fixture
def service(store, workflow, sink):
    return PublishingService(
        store=store,
        workflow=workflow,
        sink=sink,
        locks=BookLockRegistry(timeout=10),
    )


@pytest.fixture
def book(service):
    return service.register_book(ISBN, "The Odyssey", "Book of Wanderings", "Epic")

