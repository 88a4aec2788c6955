"""
Test configuration and fixtures.

Every test gets a fresh SQLite database file (through aiosqlite) with the full
schema, including the partial unique index on active bookings.
"""

import os
import uuid
from types import SimpleNamespace

import pytest

# Must be set BEFORE any import of pearlconnect.core.config / pearlconnect.core.db
os.environ["DATABASE_DSN"] = "sqlite+aiosqlite:///./.pytest-pearlconnect.db"
os.environ["ENV"] = "local"
os.environ["OUTBOX_RELAY_ENABLED"] = "false"
os.environ["EVENT_BUS_PROVIDER"] = "noop"

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession  # noqa: E402

from pearlconnect.core.base import Base  # noqa: E402
from pearlconnect.core.db import import_models  # noqa: E402
from pearlconnect.core.security import Principal  # noqa: E402
from pearlconnect.modules.directory.models import User, Service  # noqa: E402


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pearlconnect.db'}")
    import_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
async def seed(session):
    provider = User(username="provider", email="provider@example.com", role="provider")
    customer = User(username="customer", email="customer@example.com", role="customer")
    other_customer = User(username="other", email="other@example.com", role="customer")
    admin = User(username="admin", email="admin@example.com", role="admin")
    session.add_all([provider, customer, other_customer, admin])
    await session.flush()
    service = Service(provider_id=provider.id, title="Deep cleaning", description="3 rooms", price=25)
    session.add(service)
    await session.commit()
    return SimpleNamespace(
        provider=provider,
        customer=customer,
        other_customer=other_customer,
        admin=admin,
        service=service,
        as_provider=Principal(user_id=provider.id, role="provider"),
        as_customer=Principal(user_id=customer.id, role="customer"),
        as_other_customer=Principal(user_id=other_customer.id, role="customer"),
        as_admin=Principal(user_id=admin.id, role="admin"),
        as_stranger_provider=Principal(user_id=uuid.uuid4(), role="provider"),
    )
