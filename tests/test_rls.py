import uuid

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from knowdesk.settings import settings

pytestmark = pytest.mark.skipif(
    settings.TEST_URL is None, reason="TEST_URL is not set; RLS needs a migrated PostgreSQL"
)


@pytest_asyncio.fixture(scope="function")
async def engine():
    """Provides a SQLAlchemy engine for the test session."""
    db_engine = create_async_engine(str(settings.TEST_URL), future=True, echo=False)
    yield db_engine
    await db_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(engine):
    """Provides a transactional database session for a test."""
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


async def set_tenant(session: AsyncSession, tenant_id: uuid.UUID) -> None:
    await session.execute(
        text("SELECT set_config('app.current_tenant', :tenant_id, true)"),
        {"tenant_id": str(tenant_id)},
    )


@pytest.mark.asyncio
async def test_rls_isolation_for_documents_and_chunks(db_session: AsyncSession):
    """
    A tenant cannot read another tenant's documents or chunks.
    This test MUST be run as a non-superuser.
    """
    tenant_a_id = uuid.uuid4()
    tenant_b_id = uuid.uuid4()
    document_a_id = uuid.uuid4()

    async with db_session.begin():
        is_superuser = await db_session.execute(
            text("SELECT current_user IN (SELECT rolname FROM pg_roles WHERE rolsuper)")
        )
        if is_superuser.scalar():
            pytest.skip("This test must be run as a non-superuser to validate RLS.")

        for tenant_id, name in ((tenant_a_id, "Tenant A"), (tenant_b_id, "Tenant B")):
            await set_tenant(db_session, tenant_id)
            await db_session.execute(
                text("INSERT INTO tenants (id, name) VALUES (:id, :name)"),
                {"id": tenant_id, "name": f"{name} {tenant_id.hex[:8]}"},
            )

        await set_tenant(db_session, tenant_a_id)
        await db_session.execute(
            text(
                "INSERT INTO documents (id, tenant_id, title, file_name, file_type, status) "
                "VALUES (:id, :tenant_id, 'Doc for A', 'a.txt', 'TXT', 'COMPLETED')"
            ),
            {"id": document_a_id, "tenant_id": tenant_a_id},
        )
        await db_session.execute(
            text(
                "INSERT INTO document_chunks (id, tenant_id, document_id, chunk_index, content) "
                "VALUES (:id, :tenant_id, :document_id, 0, 'Office hours are 9am-5pm.')"
            ),
            {"id": uuid.uuid4(), "tenant_id": tenant_a_id, "document_id": document_a_id},
        )

    async with db_session.begin():
        await set_tenant(db_session, tenant_b_id)
        result = await db_session.execute(
            text("SELECT id FROM documents WHERE id = :doc_id"), {"doc_id": document_a_id}
        )
        assert result.first() is None, "Tenant B was able to access Tenant A's document."
        result = await db_session.execute(
            text("SELECT count(*) FROM document_chunks WHERE document_id = :doc_id"),
            {"doc_id": document_a_id},
        )
        assert result.scalar_one() == 0, "Tenant B was able to access Tenant A's chunks."

        await set_tenant(db_session, tenant_a_id)
        result = await db_session.execute(
            text("SELECT id FROM documents WHERE id = :doc_id"), {"doc_id": document_a_id}
        )
        assert result.scalar_one() == document_a_id, "Tenant A could not access its own document."

    async with db_session.begin():
        for tenant_id in (tenant_a_id, tenant_b_id):
            await set_tenant(db_session, tenant_id)
            await db_session.execute(text("DELETE FROM tenants WHERE id = :id"), {"id": tenant_id})
