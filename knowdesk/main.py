from contextlib import asynccontextmanager

from fastapi import FastAPI

from knowdesk.api.errors import register_exception_handlers
from knowdesk.api.v1 import agents as agents_router
from knowdesk.api.v1 import billing as billing_router
from knowdesk.api.v1 import chat as chat_router
from knowdesk.api.v1 import conversations as conversations_router
from knowdesk.api.v1 import documents as documents_router
from knowdesk.api.v1 import tenants as tenants_router
from knowdesk.config.db import check_db_connection
from knowdesk.config.redis import check_redis_connection
from knowdesk.config.supabase import check_supabase_connection
from knowdesk.services.container import get_client_cache
from knowdesk.utils.logging_config import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handle application startup and shutdown events.
    """
    await check_db_connection()
    await check_redis_connection()
    await check_supabase_connection()
    logger.info("KNOWDESK API IS READY")

    yield

    get_client_cache().clear()


app = FastAPI(
    lifespan=lifespan,
    title="Knowdesk",
    description="Document ingestion and grounded question answering for support agents",
)
register_exception_handlers(app)

# Include routers
app.include_router(
    documents_router.router, prefix="/api/v1/documents", tags=["Documents"]
)
app.include_router(agents_router.router, prefix="/api/v1/agents", tags=["Agents"])
app.include_router(billing_router.router, prefix="/api/v1/billing", tags=["Billing"])
app.include_router(tenants_router.router, prefix="/api/v1/tenant", tags=["Tenant"])
app.include_router(chat_router.router, prefix="/api/v1/chat", tags=["Chat"])
app.include_router(
    conversations_router.router,
    prefix="/api/v1/conversations",
    tags=["Conversations"],
)


@app.get("/")
def read_root() -> dict[str, str]:
    return {"message": "Hello from Knowdesk API!"}
