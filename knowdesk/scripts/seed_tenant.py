"""Creates a tenant with one knowledge base, one agent and a starting balance."""

import argparse
import asyncio

from knowdesk.config.db import SessionLocal
from knowdesk.models import Agent, KnowledgeBase, Tenant
from knowdesk.services.container import get_usage_ledger
from knowdesk.services.knowledge_bases import DEFAULT_KNOWLEDGE_BASE_NAME
from knowdesk.settings import settings

WELCOME_BONUS = 1000


async def seed_tenant(name: str, domain: str, bonus: int) -> None:
    async with SessionLocal() as session:
        tenant = Tenant(name=name, plan="free", allowed_domains=[domain])
        session.add(tenant)
        await session.flush()

        kb = KnowledgeBase(
            tenant_id=tenant.id, name=DEFAULT_KNOWLEDGE_BASE_NAME, description="Help center"
        )
        agent = Agent(
            tenant_id=tenant.id,
            name=f"{name} assistant",
            model=settings.DEFAULT_CHAT_MODEL,
            knowledge_bases=[kb],
        )
        session.add_all([kb, agent])
        await session.commit()

    balance = await get_usage_ledger().add_bonus(tenant.id, bonus, "Welcome bonus")
    print("Tenant ID:", tenant.id)
    print("Knowledge base ID:", kb.id)
    print("Agent ID:", agent.id)
    print("Balance:", balance)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("name")
    parser.add_argument("--domain", default="example.com")
    parser.add_argument("--bonus", type=int, default=WELCOME_BONUS)
    args = parser.parse_args()
    asyncio.run(seed_tenant(args.name, args.domain, args.bonus))
