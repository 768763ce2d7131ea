import os

# 설정은 import 시점에 로드되므로 quiz_studio import 전에 지정
os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["GEMINI_API_KEY"] = ""
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from quiz_studio.main import app
from quiz_studio.models import Base, get_db
from quiz_studio.services.blob_store import LocalBlobStore


@pytest_asyncio.fixture
async def test_engine():
    """테스트용 인메모리 SQLite 엔진 (SAVEPOINT 지원 설정 포함)"""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # pysqlite 자체 트랜잭션 처리 비활성화
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    """요청마다 새 세션을 쓰는 API 클라이언트"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def blob_root(tmp_path, monkeypatch):
    """로컬 blob store를 임시 디렉터리로 교체"""
    store = LocalBlobStore(tmp_path)
    monkeypatch.setattr("quiz_studio.services.import_service.get_blob_store", lambda: store)
    return tmp_path

