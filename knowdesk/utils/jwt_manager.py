"""Utility for generating JWT tokens for anonymous chat sessions."""

from datetime import datetime, timedelta, timezone

import jwt
from uuid_extensions import uuid7

from knowdesk.settings import settings

CHAT_ROLE = "customer"


def create_chat_session_jwt(tenant_id: str, agent_id: str, conversation_id: str) -> str:
    """
    Creates a JWT token for an anonymous chat session.

    Args:
        tenant_id (str): The ID of the tenant.
        agent_id (str): The ID of the agent answering the chat.
        conversation_id (str): The ID of the conversation.

    Returns:
        str: The encoded JWT token.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "iat": now,
        "exp": now + timedelta(hours=settings.CHAT_SESSION_EXPIRE_HOURS),
        "sub": f"anon_{uuid7()}",
        "role": CHAT_ROLE,
        "tenant_id": tenant_id,
        "agent_id": agent_id,
        "conversation_id": conversation_id,
    }
    return jwt.encode(payload, settings.SUPABASE_JWT_SECRET, algorithm="HS256")
