"""
Memories Backend: Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment overrides are applied before any `memories` import, so the
       settings singleton, the engine and the file service all point at
       temporary locations.

Fixture Hierarchy:
    Function-scoped:
    ├── mock_db_session:   AsyncMock standing in for an AsyncSession
    ├── temp_storage:      fresh storage root for FileService tests
    ├── png_bytes / jpeg_bytes / make_image: real images made with Pillow
    ├── sample_document:   a PageDocument with one image item and rich text
    ├── db_engine / db_session: throwaway SQLite database (aiosqlite)
    └── test_client:       httpx AsyncClient on the FastAPI app, wired to db_engine
"""

import io
import os
import tempfile
from typing import Callable
from unittest.mock import AsyncMock, MagicMock

# Override settings BEFORE any memories import.
_TEST_ROOT = tempfile.mkdtemp(prefix="memories_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_ROOT}/app.db"
os.environ["STORAGE_ROOT"] = os.path.join(_TEST_ROOT, "storage")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RETRY_MIN_WAIT"] = "0"
os.environ["RETRY_MAX_WAIT"] = "0"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from memories.canvas.document import PageDocument
from memories.canvas.geometry import Point, Size
from memories.canvas.items import insert_image
from memories.canvas.rich_text import FontSpec, RichText, TextRun, TextStyle
from memories.database import Base, get_db_session
from memories.models.letter import Letter  # noqa: F401
from memories.models.page import Page  # noqa: F401


# ══════════════════════════════════════════════════════════════════════════
# Mocks & Files
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    A mock async database session.

    Usage:
        mock_db_session.get.return_value = page_row
        doc = await PageStore(mock_db_session).load_document(page_id)
    """
    session = AsyncMock()
    session.get = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """Factory: make_image(width, height, fmt="PNG", color="#3366CC") -> bytes."""

    def _make(width: int, height: int, fmt: str = "PNG", color: str = "#3366CC") -> bytes:
        buffer = io.BytesIO()
        Image.new("RGB", (width, height), color).save(buffer, format=fmt)
        return buffer.getvalue()

    return _make


@pytest.fixture
def png_bytes(make_image) -> bytes:
    """A 400×200 PNG (2:1 landscape)."""
    return make_image(400, 200)


@pytest.fixture
def jpeg_bytes(make_image) -> bytes:
    return make_image(300, 600, fmt="JPEG", color="#CC3333")


@pytest.fixture
def text_style() -> TextStyle:
    return TextStyle(font=FontSpec(family="DejaVuSans", size=32), color="#000000")


@pytest.fixture
def sample_document(png_bytes, text_style) -> PageDocument:
    """One image item at the page center, a two-run body and a color background."""
    document = PageDocument.create_empty()
    document.items.append(
        insert_image(png_bytes, Size(width=400, height=200), Point(x=500, y=700))
    )
    rich = RichText(
        runs=[
            TextRun(text="Dear Anna, ", style=text_style),
            TextRun(
                text="happy birthday!",
                style=TextStyle(font=FontSpec(family="DejaVuSans", size=48), color="#AA0000"),
            ),
        ]
    )
    document.set_attributed_body_text(rich.to_bytes())
    document.set_body_text(rich.plain_text)
    document.set_background_color("#FFF6E0")
    document.drawing_data = b"\x00\x01ink\xff"
    return document


# ══════════════════════════════════════════════════════════════════════════
# Database & API
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """A fresh SQLite database with every table created."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    factory = async_sessionmaker(db_engine, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def test_client(db_engine):
    """
    HTTPX AsyncClient talking to the FastAPI app in-process.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
    """
    from memories.main import app

    factory = async_sessionmaker(db_engine, expire_on_commit=False)

    async def override_db_session():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
