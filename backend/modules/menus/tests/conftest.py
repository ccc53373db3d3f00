# backend/modules/menus/tests/conftest.py

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.config import Settings
from core.database import Base
from modules.menus.models.menu_models import MediaFile, Page
from modules.menus.services import (
    MenuService,
    PopulationResolver,
    SQLAlchemyEntityStore,
    build_menu_schema_registry,
)


@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory database for each test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def test_settings():
    return Settings(default_page_size=10, max_page_size=50)


@pytest.fixture
def schema_registry():
    return build_menu_schema_registry()


@pytest.fixture
def population_resolver(test_settings, schema_registry):
    return PopulationResolver(test_settings.menu_layouts, schema_registry)


@pytest.fixture
def store(db_session, schema_registry):
    return SQLAlchemyEntityStore(db_session, schema_registry.models())


@pytest.fixture
def menu_service(store, schema_registry, population_resolver, test_settings):
    return MenuService(store, schema_registry, population_resolver, settings=test_settings)


@pytest_asyncio.fixture
async def sample_page(db_session):
    """Published page with a cover image"""
    cover = MediaFile(name="cover.png", url="/uploads/cover.png", mime="image/png")
    db_session.add(cover)
    await db_session.flush()

    page = Page(title="About us", slug="about-us", cover_id=cover.id)
    db_session.add(page)
    await db_session.commit()
    return page


@pytest_asyncio.fixture
async def main_menu(menu_service, sample_page):
    """Menu `main`: Home > About, Contact"""
    return await menu_service.create({
        "title": "Main",
        "slug": "main",
        "items": [
            {"id": "tmp-home", "title": "Home", "url": "/"},
            {"title": "About", "parent": {"id": "tmp-home"}, "page": {"id": sample_page.id}},
            {"title": "Contact", "url": "/contact", "target": "_blank"},
        ],
    })