"""adding RLS policies and the hnsw index on chunk vectors

Revision ID: b84d0e6a2c17
Revises: 7c2e8b1f4a93
Create Date: 2026-09-14 10:31:07.552871

"""

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "b84d0e6a2c17"
down_revision: Union[str, Sequence[str], None] = "7c2e8b1f4a93"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TENANT_TABLES = (
    "users",
    "knowledge_bases",
    "documents",
    "document_chunks",
    "chunk_vectors",
    "agents",
    "usage_transactions",
    "conversations",
    "messages",
)

# Background workers and the ledger run as the service role across tenants.
SERVICE_ROLE_TABLES = (
    "documents",
    "document_chunks",
    "chunk_vectors",
    "usage_transactions",
    "conversations",
    "messages",
)


def upgrade() -> None:
    """Enable Row Level Security, create isolation policies and the vector index"""
    op.execute("ALTER TABLE tenants ENABLE ROW LEVEL SECURITY")
    op.execute("""
        CREATE POLICY tenant_isolation ON tenants
        FOR ALL
        USING (id = current_setting('app.current_tenant')::uuid)
    """)

    for table in TENANT_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"""
            CREATE POLICY tenant_isolation ON {table}
            FOR ALL
            USING (tenant_id = current_setting('app.current_tenant')::uuid)
        """)

    for table in SERVICE_ROLE_TABLES:
        op.execute(f"""
            CREATE POLICY service_role_access ON {table}
            FOR ALL
            USING (current_setting('role', true) = 'service_role')
        """)

    op.execute("ALTER TABLE alembic_version ENABLE ROW LEVEL SECURITY")
    op.execute("""
        CREATE POLICY admin_only ON alembic_version
        FOR ALL
        USING (current_setting('role', true) = 'service_role')
    """)

    op.execute("""
        CREATE INDEX CONCURRENTLY idx_chunk_vectors_embedding_hnsw
        ON chunk_vectors
        USING hnsw (embedding vector_cosine_ops)
        WITH (m = 16, ef_construction = 64)
    """)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("idx_chunk_vectors_embedding_hnsw", table_name="chunk_vectors")
    op.execute("DROP POLICY IF EXISTS admin_only ON alembic_version")
    op.execute("ALTER TABLE alembic_version DISABLE ROW LEVEL SECURITY")

    for table in reversed(SERVICE_ROLE_TABLES):
        op.execute(f"DROP POLICY IF EXISTS service_role_access ON {table}")

    for table in reversed(TENANT_TABLES):
        op.execute(f"DROP POLICY IF EXISTS tenant_isolation ON {table}")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")

    op.execute("DROP POLICY IF EXISTS tenant_isolation ON tenants")
    op.execute("ALTER TABLE tenants DISABLE ROW LEVEL SECURITY")
