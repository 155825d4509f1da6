# tests/conftest.py
"""
Pytest configuration and fixtures.

Every test gets a fresh in-memory SQLite database (aiosqlite) with the ORM
schema created from metadata.  StaticPool keeps the single in-memory
connection alive across the sessions a test opens.

API tests drive the FastAPI app in-process through httpx's ASGITransport with
``get_store`` overridden to the test store.
"""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from buildwise.db.models import Base
from buildwise.graph.models import Edge, Node
from buildwise.modules.service import propose_module
from buildwise.server.main import create_app
from buildwise.snapshots.service import initialize_project
from buildwise.store import SqlDocumentStore, get_store

PROJECT_ID = "proj-1"

ADMIN_HEADERS = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
TEACHER_HEADERS = {"X-User-Id": "teacher-1", "X-User-Role": "teacher"}
STUDENT_HEADERS = {"X-User-Id": "student-1", "X-User-Role": "student"}


@pytest.fixture
async def engine():
    """In-memory SQLite engine with the schema created."""
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield eng

    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def store(session_factory) -> SqlDocumentStore:
    return SqlDocumentStore(session_factory)


@pytest.fixture
def app(store):
    """FastAPI app whose routes read and write the test store."""
    application = create_app()
    application.dependency_overrides[get_store] = lambda: store
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def canonical_nodes() -> list[Node]:
    """Canonical graph used by most scenarios: an API talking to a SQL database."""
    return [
        Node(id="api", type="service", label="API", meta={"runtime": "python"}),
        Node(id="db", type="database", label="Main DB", meta={"dbType": "postgres", "size": "small"}),
    ]


@pytest.fixture
def canonical_edges() -> list[Edge]:
    return [Edge(source="api", target="db", meta={"protocol": "tcp", "auth": "password"})]


@pytest.fixture
async def seeded_project(store, canonical_nodes, canonical_edges):
    """Project with version 1 of the canonical graph active."""
    return await initialize_project(
        store, PROJECT_ID, "admin-1", nodes=canonical_nodes, edges=canonical_edges
    )


@pytest.fixture
async def conflicting_module(store, seeded_project):
    """Module that disagrees with the canonical graph on every rule."""
    return await propose_module(
        store,
        PROJECT_ID,
        "storage",
        nodes=[
            Node(id="db", type="cache", label="Cache", meta={"dbType": "redis", "ttl": 60}),
            Node(id="worker", type="service", label="Worker"),
        ],
        edges=[Edge(source="api", target="db", meta={"protocol": "http", "auth": "token"})],
    )
